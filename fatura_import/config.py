from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Mapping

from parsers.installments import InstallmentPolicy

from fatura_import.deduplication import DeduplicationPolicy


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = (env.get(name) or "").strip().lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    return default


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_decimal(env: Mapping[str, str], name: str, default: Decimal) -> Decimal:
    raw = (env.get(name) or "").strip()
    try:
        return Decimal(raw) if raw else default
    except InvalidOperation:
        return default


def _env_log_level(env: Mapping[str, str]) -> str:
    level = (env.get("LOG_LEVEL") or "INFO").strip().upper()
    # getLevelName maps known names to their numeric level.
    return level if isinstance(logging.getLevelName(level), int) else "INFO"


@dataclass(frozen=True)
class Settings:
    version: str = "dev"
    git_sha: str = "unknown"
    build_time: str = "unknown"
    log_level: str = "INFO"
    save_text_fixtures: bool = False
    fixtures_dir: Path = Path(__file__).resolve().parents[1] / "tests" / "fixtures"
    installment_policy: InstallmentPolicy = field(default_factory=InstallmentPolicy)
    only_current_installment: bool = True
    allow_exact_duplicates: bool = False
    lookback_days: int = 400
    default_category_name: str = "Despesa"

    def deduplication_policy(self, reference_month: date | None = None) -> DeduplicationPolicy:
        return DeduplicationPolicy(
            only_current_installment=self.only_current_installment,
            allow_exact_duplicates=self.allow_exact_duplicates,
            reference_month=reference_month,
        )


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build settings from environment variables (``os.environ`` by default)."""
    env = os.environ if env is None else env
    defaults = InstallmentPolicy()

    policy = InstallmentPolicy(
        suspicious_amount=_env_decimal(env, "INSTALLMENT_SUSPICIOUS_AMOUNT", defaults.suspicious_amount),
        min_amount_digits=_env_int(env, "INSTALLMENT_MIN_AMOUNT_DIGITS", defaults.min_amount_digits),
        min_correction_delta=_env_decimal(env, "INSTALLMENT_MIN_CORRECTION_DELTA", defaults.min_correction_delta),
        max_corrected_amount=_env_decimal(env, "INSTALLMENT_MAX_CORRECTED_AMOUNT", defaults.max_corrected_amount),
        max_recovered_total=_env_int(env, "INSTALLMENT_MAX_RECOVERED_TOTAL", defaults.max_recovered_total),
        lookahead_lines=_env_int(env, "INSTALLMENT_LOOKAHEAD_LINES", defaults.lookahead_lines),
    )

    fixtures_dir = env.get("FIXTURES_DIR")
    return Settings(
        version=env.get("VERSION", "dev"),
        git_sha=env.get("GIT_SHA", "unknown"),
        build_time=env.get("BUILD_TIME", "unknown"),
        log_level=_env_log_level(env),
        save_text_fixtures=_env_bool(env, "SAVE_TEXT_FIXTURES", False),
        fixtures_dir=Path(fixtures_dir) if fixtures_dir else Settings.fixtures_dir,
        installment_policy=policy,
        only_current_installment=_env_bool(env, "DEDUP_ONLY_CURRENT_INSTALLMENT", True),
        allow_exact_duplicates=_env_bool(env, "DEDUP_ALLOW_EXACT_DUPLICATES", False),
        lookback_days=_env_int(env, "IMPORT_LOOKBACK_DAYS", 400),
        default_category_name=env.get("DEFAULT_CATEGORY_NAME") or "Despesa",
    )
