from collections import Counter
from threading import Lock
from typing import Dict, Counter as CounterType

_metrics: CounterType[str] = Counter()
_lock = Lock()


def _inc(key: str) -> None:
    with _lock:
        _metrics[key] += 1


def record_login_success() -> None:
    _inc("logins")


def record_login_failure() -> None:
    _inc("login_failures")


def record_coupon_quoted() -> None:
    _inc("coupon_quotes")


def record_coupon_rejected(reason: str) -> None:
    _inc(f"coupon_rejections:{reason}")


def record_coupon_redeemed() -> None:
    _inc("coupon_redemptions")


def record_storage_failure() -> None:
    _inc("storage_failures")


def snapshot() -> Dict[str, int]:
    with _lock:
        return dict(_metrics)


def reset() -> None:
    with _lock:
        _metrics.clear()
