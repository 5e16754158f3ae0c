"""Client surfaces for SourceLens: Flask web API and command-line tools."""
