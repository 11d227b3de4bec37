"""
Verify package structure and module imports.
Ensures that the core application modules can be imported without syntax errors,
confirming correct package setup and path configuration.
"""


def test_messaging_imports():
    """Assert that the MQTT modules can be imported without syntax errors."""
    try:
        import edge_interop.models
        import edge_interop.config_loader
        import edge_interop.connection
        import edge_interop.companion.app
        import edge_interop.edge.main
        import edge_interop.edge.responder
        success = True
    except ImportError as e:
        success = False
        print(f"Import Failed: {e}")

    assert success is True


def test_tpm_device_selection_imports():
    """The TPM flag parsing must not need the TPM library."""
    try:
        import edge_interop.tpm.devices
        success = True
    except ImportError as e:
        success = False
        print(f"Import Failed: {e}")

    assert success is True
