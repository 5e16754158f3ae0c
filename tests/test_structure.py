"""Tests for the sourcelens package structure."""


def test_package_imports():
    """Test that main package can be imported."""
    import sourcelens

    assert sourcelens.__version__ == "0.1.0"


def test_service_subpackage():
    """Test that service subpackage exists."""
    import sourcelens.service

    assert sourcelens.service is not None


def test_client_entry_points():
    """Test that every console script target is importable."""
    from sourcelens.client.app import main as app_main
    from sourcelens.client.cli import ask, ingest, reconcile, search, sources
    from sourcelens.service.mcp_server import main as mcp_main

    assert callable(app_main)
    assert callable(mcp_main)
    for command in (ingest, search, sources, reconcile, ask):
        assert command.name is not None


def test_service_modules_import():
    """Test that every service module imports, including the blob store whose
    ``list`` method shares a name with the builtin used in its annotations."""
    import importlib

    for name in (
        "sourcelens.service.blob_store",
        "sourcelens.service.document_store",
        "sourcelens.service.reconciler",
        "sourcelens.service.pipeline",
        "sourcelens.service.services",
    ):
        assert importlib.import_module(name) is not None

    from sourcelens.service.blob_store import S3BlobStore

    assert callable(S3BlobStore.list)
