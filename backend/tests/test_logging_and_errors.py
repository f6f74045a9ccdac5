import logging

import pytest

from app.errors import AppError, ErrorCode, error_boundary
from app.logging_config import ColoredFormatter, LogColors, log_timing

logger = logging.getLogger("tests.logging")


@pytest.mark.asyncio
async def test_log_timing_logs_completion_at_debug(caplog):
    caplog.set_level(logging.DEBUG, logger="tests.logging")

    async with log_timing(logger, "Fetch playlists"):
        pass

    assert any(
        record.message == "Fetch playlists completed" and record.levelno == logging.DEBUG
        for record in caplog.records
    )
    assert isinstance(caplog.records[-1].duration_ms, int)


@pytest.mark.asyncio
async def test_log_timing_logs_failures_and_reraises(caplog):
    caplog.set_level(logging.DEBUG, logger="tests.logging")

    with pytest.raises(ValueError):
        async with log_timing(logger, "Upsert song"):
            raise ValueError("bad song")

    assert caplog.records[-1].levelno == logging.ERROR
    assert caplog.records[-1].message.startswith("Upsert song failed after")


def test_error_boundary_wraps_unexpected_errors(caplog):
    with pytest.raises(AppError) as excinfo:
        with error_boundary(ErrorCode.DB_ERROR, "Failed to create playlist", logger):
            raise RuntimeError("connection reset")

    assert excinfo.value.code == ErrorCode.DB_ERROR
    assert excinfo.value.status_code == 500
    assert excinfo.value.message == "Failed to create playlist"
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert "Failed to create playlist: connection reset" in caplog.text


def test_error_boundary_passes_app_errors_through():
    original = AppError(ErrorCode.NOT_FOUND, "Playlist not found")

    with pytest.raises(AppError) as excinfo:
        with error_boundary(ErrorCode.DB_ERROR, "Failed to fetch playlist"):
            raise original

    assert excinfo.value is original
    assert excinfo.value.status_code == 404


def test_auth_errors_ask_for_bearer_credentials():
    error = AppError(ErrorCode.AUTH_FAILED, "Authentication required")

    assert error.status_code == 401
    assert error.headers == {"WWW-Authenticate": "Bearer"}
    assert str(error) == "AUTH_FAILED: Authentication required"


def test_colored_formatter_restores_level_name():
    formatter = ColoredFormatter(fmt="%(levelname)s %(message)s")
    record = logging.LogRecord("app", logging.WARNING, __file__, 1, "careful", None, None)

    formatted = formatter.format(record)

    assert formatted == f"{LogColors.YELLOW}WARNING{LogColors.RESET} careful"
    assert record.levelname == "WARNING"
