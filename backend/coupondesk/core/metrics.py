from collections import Counter
from threading import Lock
from typing import Dict, Counter as CounterType

_metrics: CounterType[str] = Counter()
_lock = Lock()


def _inc(key: str) -> None:
    with _lock:
        _metrics[key] += 1


def record_validation() -> None:
    _inc("coupon_validations")


def record_application() -> None:
    _inc("coupon_applications")


def record_rejection(reason: str) -> None:
    with _lock:
        _metrics["coupon_rejections"] += 1
        _metrics[f"coupon_rejections.{reason}"] += 1


def record_coupon_created() -> None:
    _inc("coupons_created")


def snapshot() -> Dict[str, int]:
    with _lock:
        return dict(_metrics)


def reset() -> None:
    with _lock:
        _metrics.clear()
