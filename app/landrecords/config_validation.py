from __future__ import annotations

from typing import Literal

from . import config
from .logging_utils import _scraper_event
from .utils import log_line

Entrypoint = Literal["ui", "cli", "tests"]


def _raise_config_error(
    message: str, *, entrypoint: Entrypoint, error: str, mode: str | None
) -> None:
    _scraper_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
        mode=mode,
    )
    mode_fragment = f", mode={mode}" if mode else ""
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint}{mode_fragment})")
    raise ValueError(message)


def _clamp_to_zero(field_name: str, value: float, *, entrypoint: Entrypoint, mode: str | None) -> None:
    _scraper_event(
        "state",
        phase="config",
        context="runtime_validation",
        kind="config_adjustment",
        field=field_name,
        value=value,
        adjusted=0,
        entrypoint=entrypoint,
        mode=mode,
    )
    log_line(f"[CONFIG] {field_name} < 0; clamping to 0.")
    setattr(config, field_name, 0)


def validate_runtime_config(entrypoint: Entrypoint, *, mode: str | None = None) -> None:
    """Validate runtime configuration for the given entrypoint.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    Negative settle/retry delays are clamped to zero and logged.
    """

    if mode is not None and str(mode).strip().lower() not in config.EXPORT_MODES:
        _raise_config_error(
            f"Unknown export mode {mode!r}; expected one of {', '.join(config.EXPORT_MODES)}.",
            entrypoint=entrypoint,
            error="export_mode_invalid",
            mode=mode,
        )

    if config.SEARCH_MAX_ATTEMPTS < 1:
        _raise_config_error(
            "SEARCH_MAX_ATTEMPTS must be at least 1.",
            entrypoint=entrypoint,
            error="search_attempts_invalid",
            mode=mode,
        )

    for field_name in ("SEARCH_RETRY_DELAY_SECONDS", "VIEWER_SETTLE_SECONDS", "MENU_SETTLE_SECONDS"):
        value = getattr(config, field_name)
        if value < 0:
            _clamp_to_zero(field_name, value, entrypoint=entrypoint, mode=mode)

    if config.MIN_FREE_MB < 0:
        _raise_config_error(
            "MIN_FREE_MB must be non-negative.",
            entrypoint=entrypoint,
            error="min_free_mb_invalid",
            mode=mode,
        )

    timeout_fields = [
        ("PLAYWRIGHT_NAV_TIMEOUT_SECONDS", config.PLAYWRIGHT_NAV_TIMEOUT_SECONDS),
        ("PLAYWRIGHT_DETAIL_TIMEOUT_SECONDS", config.PLAYWRIGHT_DETAIL_TIMEOUT_SECONDS),
        ("PLAYWRIGHT_SELECTOR_TIMEOUT_SECONDS", config.PLAYWRIGHT_SELECTOR_TIMEOUT_SECONDS),
        ("POPUP_TIMEOUT_SECONDS", config.POPUP_TIMEOUT_SECONDS),
        ("VIEWER_IMAGE_TIMEOUT_SECONDS", config.VIEWER_IMAGE_TIMEOUT_SECONDS),
        ("DOWNLOAD_TIMEOUT_SECONDS", config.DOWNLOAD_TIMEOUT_SECONDS),
        ("PLAYWRIGHT_CLICK_TIMEOUT_MS", config.PLAYWRIGHT_CLICK_TIMEOUT_MS),
    ]

    for field_name, value in timeout_fields:
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
                mode=mode,
            )


__all__ = ["validate_runtime_config", "Entrypoint"]
