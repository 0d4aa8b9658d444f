import argparse
import asyncio
import json
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import ValidationError

from coupondesk.core.config import settings
from coupondesk.core.logging_config import configure_logging
from coupondesk.db.session import SessionLocal, init_models
from coupondesk.models.coupons import Coupon, CouponStatus, DiscountKind
from coupondesk.schemas.coupons import CouponCreate
from coupondesk.services import coupons as coupons_service


def _parse_datetime(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError as exc:
        raise SystemExit(f"Invalid datetime: {raw}") from exc


def _parse_decimal(raw: str | None) -> Decimal | None:
    if raw is None:
        return None
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise SystemExit(f"Invalid amount: {raw}") from exc


def _coupon_row(coupon: Coupon) -> dict[str, Any]:
    return {
        "code": coupon.code,
        "kind": coupon.discount_kind.value,
        "value": str(coupon.discount_value),
        "used": coupon.used_count,
        "limit": coupon.usage_limit,
        "state": coupons_service.coupon_status_label(coupon),
    }


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


async def create_coupon(args: argparse.Namespace) -> None:
    code = args.code or coupons_service.generate_coupon_code(prefix=args.prefix or "", length=args.length)
    try:
        payload = CouponCreate(
            code=code,
            description=args.description,
            discount_kind=DiscountKind(args.kind),
            discount_value=_parse_decimal(args.value),
            minimum_order_amount=_parse_decimal(args.min_order),
            maximum_discount_amount=_parse_decimal(args.max_discount),
            usage_limit=args.usage_limit,
            per_user_limit=args.per_user_limit,
            valid_from=_parse_datetime(args.valid_from),
            valid_until=_parse_datetime(args.valid_until),
        )
    except ValidationError as exc:
        raise SystemExit(f"Invalid coupon: {exc}") from exc

    async with SessionLocal() as session:
        try:
            coupon = await coupons_service.create_coupon(session, payload)
        except coupons_service.CouponError as exc:
            raise SystemExit(str(exc)) from exc
        _print_json(_coupon_row(coupon))


async def list_coupons(args: argparse.Namespace) -> None:
    status = CouponStatus(args.status) if args.status else None
    async with SessionLocal() as session:
        coupons = await coupons_service.list_coupons(session, status=status)
        _print_json([_coupon_row(c) for c in coupons])


async def check_coupon(args: argparse.Namespace, *, apply: bool) -> None:
    async with SessionLocal() as session:
        try:
            if apply:
                applied = await coupons_service.apply_coupon(
                    session, code=args.code, user_id=args.user, order_amount=args.amount
                )
                _print_json(
                    {
                        "code": applied.code,
                        "discount_amount": applied.discount_amount,
                        "order_total": applied.order_total,
                        "used_count": applied.used_count,
                        "usage_limit": applied.usage_limit,
                    }
                )
                return
            result = await coupons_service.validate_coupon(
                session, code=args.code, user_id=args.user, order_amount=args.amount
            )
        except coupons_service.CouponError as exc:
            raise SystemExit(f"{exc.code}: {exc}") from exc
        _print_json({"code": result.code, "valid": result.valid, "discount_amount": result.discount_amount, "reasons": result.reasons})


async def set_status(args: argparse.Namespace, status: CouponStatus) -> None:
    async with SessionLocal() as session:
        try:
            coupon = await coupons_service.set_coupon_status(session, code=args.code, status=status)
        except coupons_service.CouponError as exc:
            raise SystemExit(str(exc)) from exc
        _print_json(_coupon_row(coupon))


def _add_create_command(subparsers) -> None:
    create = subparsers.add_parser("create-coupon", help="Create a coupon")
    create.add_argument("--code", help="Coupon code (generated when omitted)")
    create.add_argument("--prefix", default="", help="Prefix for generated codes")
    create.add_argument("--length", type=int, default=10, help="Random suffix length for generated codes")
    create.add_argument("--description")
    create.add_argument("--kind", choices=[k.value for k in DiscountKind], default=DiscountKind.percentage.value)
    create.add_argument("--value", required=True, help="Percentage points or fixed amount")
    create.add_argument("--min-order", help="Minimum order amount")
    create.add_argument("--max-discount", help="Maximum discount amount")
    create.add_argument("--usage-limit", type=int)
    create.add_argument("--per-user-limit", type=int)
    create.add_argument("--valid-from", help="ISO-8601 start of the validity window")
    create.add_argument("--valid-until", help="ISO-8601 end of the validity window")


def _add_check_commands(subparsers) -> None:
    for name, help_text in (("validate", "Check a coupon without redeeming it"), ("apply", "Redeem a coupon")):
        cmd = subparsers.add_parser(name, help=help_text)
        cmd.add_argument("--code", required=True)
        cmd.add_argument("--user", required=True, help="User identifier")
        cmd.add_argument("--amount", required=True, help="Order amount")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Coupon administration utilities")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("init-db", help="Create database tables")
    _add_create_command(subparsers)
    list_cmd = subparsers.add_parser("list-coupons", help="List coupons")
    list_cmd.add_argument("--status", choices=[s.value for s in CouponStatus])
    _add_check_commands(subparsers)
    for name in ("activate", "deactivate"):
        cmd = subparsers.add_parser(name, help=f"{name.capitalize()} a coupon")
        cmd.add_argument("--code", required=True)
    return parser


def _run_cli_command(args: argparse.Namespace) -> bool:
    if args.command == "init-db":
        asyncio.run(init_models())
        print("Tables created")
        return True

    if args.command == "create-coupon":
        asyncio.run(create_coupon(args))
        return True

    if args.command == "list-coupons":
        asyncio.run(list_coupons(args))
        return True

    if args.command in {"validate", "apply"}:
        asyncio.run(check_coupon(args, apply=args.command == "apply"))
        return True

    if args.command == "activate":
        asyncio.run(set_status(args, CouponStatus.active))
        return True

    if args.command == "deactivate":
        asyncio.run(set_status(args, CouponStatus.inactive))
        return True

    return False


def main(argv: list[str] | None = None) -> None:
    configure_logging(settings.log_json, settings.log_level)
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not _run_cli_command(args):
        parser.print_help()


if __name__ == "__main__":
    main()
