from __future__ import annotations

import argparse
import sys

import uvicorn

from report_checkout.adapters.inbound.cli import run_quote


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="report-checkout")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the checkout HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    quote = sub.add_parser("quote", help="price one license from a checkout payload")
    quote.add_argument("--rates", required=True, help="checkout payload JSON file")
    quote.add_argument("--tier", required=True, choices=["single", "team", "enterprise"])
    quote.add_argument("--currency", required=True)
    quote.add_argument("--country")
    quote.add_argument("--state")
    quote.add_argument("--coupon")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(sys.argv[1:] if argv is None else argv)

    if args.command == "quote":
        return run_quote(
            args.rates,
            args.tier,
            args.currency,
            country=args.country,
            state=args.state,
            coupon=args.coupon,
        )

    uvicorn.run(
        "report_checkout.asgi:create_asgi_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=False,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
