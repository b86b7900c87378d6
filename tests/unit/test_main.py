"""
Unit tests for the console entry point.
"""
from unittest.mock import patch

from storefront import main


def test_run_serves_app_with_configured_address():
    with patch("uvicorn.run") as run:
        main.run()

    run.assert_called_once_with(
        "storefront.main:app",
        host=main.settings.host,
        port=main.settings.port,
        log_level=main.settings.log_level.lower(),
    )
