"""Command line front end for the Exchange Rate API.

Usage:
    exchangerate [options] <command> [args]

Commands:
    latest BASE               Latest rates for a base currency
    convert AMOUNT FROM TO    Convert an amount between currencies
    pair FROM TO              Direct conversion rate between two currencies
    codes                     List supported currency codes
    config [view|set|reset]   Manage ~/.config/exchangerate/config.json
    cache clear               Drop every cached response

The API key is taken from --api-key, then EXCHANGE_RATE_API_KEY, then the
config file.
"""

from __future__ import annotations

import argparse
import os
import re
import sys
from pathlib import Path
from typing import List, Optional, TextIO

from exchangerate.core.config import Settings, get_settings
from exchangerate.core.logging import get_logger, init_logging
from exchangerate.core.user_config import UserConfig, UserConfigError, get_config_path
from exchangerate.formatters import (
    InvalidFormatError,
    format_conversion,
    format_currency_codes,
    format_latest_rates,
    format_pair_rate,
    heading,
    resolve_format,
)
from exchangerate.services.cache import CacheError, make_cache_backend
from exchangerate.services.client import ExchangeRateClient, build_client
from exchangerate.services.errors import ExchangeRateError
from exchangerate.services.http_client import Transport

logger = get_logger("cli")

API_KEY_ENV = "EXCHANGE_RATE_API_KEY"
_CODE_RE = re.compile(r"^[A-Z]{3}$")


class CLIError(Exception):
    pass


def validate_currency_code(code: str) -> str:
    if not _CODE_RE.match(code):
        raise CLIError(f"Invalid currency code: {code}")
    return code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="exchangerate",
        description="Command line interface for the Exchange Rate API "
        "(https://www.exchangerate-api.com/).",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--api-key", help="Your Exchange Rate API key")
    parser.add_argument(
        "--auth-method",
        choices=("bearer", "url"),
        help="'bearer' sends the key in the Authorization header, 'url' embeds it in the path",
    )
    parser.add_argument("--format", choices=("text", "json", "csv"), help="Output format")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--no-cache", action="store_true", help="Disable response caching")
    parser.add_argument(
        "--cache-backend",
        choices=("memory", "sqlite"),
        help="'sqlite' keeps responses between runs",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    sub = parser.add_subparsers(dest="command", required=True)

    latest = sub.add_parser("latest", help="Get latest exchange rates for a base currency")
    latest.add_argument("base_currency")

    convert = sub.add_parser("convert", help="Convert an amount from one currency to another")
    convert.add_argument("amount", type=float)
    convert.add_argument("from_currency")
    convert.add_argument("to_currency")

    pair = sub.add_parser("pair", help="Get direct conversion rate between two currencies")
    pair.add_argument("from_currency")
    pair.add_argument("to_currency")

    sub.add_parser("codes", help="List all supported currency codes")

    config = sub.add_parser("config", help="Manage configuration")
    config_sub = config.add_subparsers(dest="action")
    config_sub.add_parser("view", help="View current configuration")
    set_cmd = config_sub.add_parser("set", help="Set a configuration value")
    set_cmd.add_argument("key")
    set_cmd.add_argument("value")
    config_sub.add_parser("reset", help="Reset configuration to defaults")

    cache = sub.add_parser("cache", help="Manage the response cache")
    cache_sub = cache.add_subparsers(dest="action", required=True)
    cache_sub.add_parser("clear", help="Remove every cached response")

    return parser


class CLI:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        config_path: Optional[Path] = None,
        transport: Optional[Transport] = None,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
    ):
        self.settings = settings or get_settings()
        self.config_path = config_path or get_config_path()
        self.transport = transport
        self.out = out or sys.stdout
        self.err = err or sys.stderr

    def run(self, argv: Optional[List[str]] = None) -> int:
        args = build_parser().parse_args(argv)
        init_logging(debug=args.verbose or self.settings.debug, stream=self.err)
        try:
            config = UserConfig.load(self.config_path)
            color = not args.no_color and bool(config.use_color) and self.out.isatty()
            if args.command == "config":
                self._config(args.action, args, config)
                return 0
            if args.command == "cache":
                self._clear_cache(args)
                return 0
            fmt = resolve_format(args.format or config.default_format)
            client = self._client(args, config)
            try:
                self._dispatch(client, args, fmt, color)
            finally:
                client.close()
        except (CLIError, UserConfigError, InvalidFormatError, ExchangeRateError, CacheError) as e:
            print(f"Error: {e}", file=self.err)
            return 1
        return 0

    # ------------------------------------------------------------------
    def _client(self, args: argparse.Namespace, config: UserConfig) -> ExchangeRateClient:
        api_key = args.api_key or os.environ.get(API_KEY_ENV) or config.api_key
        if not api_key:
            raise CLIError(
                f"API key not provided. Use --api-key option or set {API_KEY_ENV} environment variable"
            )
        use_cache = not args.no_cache and bool(config.use_cache) and self.settings.cache_enabled
        logger.debug("cache %s", "enabled" if use_cache else "disabled")
        return build_client(
            self.settings,
            api_key=api_key,
            auth_method=args.auth_method or config.auth_method,
            use_cache=use_cache,
            cache_backend=args.cache_backend,
            transport=self.transport,
        )

    def _dispatch(
        self, client: ExchangeRateClient, args: argparse.Namespace, fmt: str, color: bool
    ) -> None:
        if args.command == "latest":
            rates = client.get_latest_rates(validate_currency_code(args.base_currency))
            self._print(format_latest_rates(rates, fmt, color))
        elif args.command == "convert":
            src = validate_currency_code(args.from_currency)
            dst = validate_currency_code(args.to_currency)
            rates = client.get_latest_rates(src)
            rate = rates.get_rate(dst) or 0.0
            converted = client.convert(args.amount, src, dst)
            self._print(format_conversion(args.amount, src, dst, converted, rate, fmt, color))
        elif args.command == "pair":
            src = validate_currency_code(args.from_currency)
            dst = validate_currency_code(args.to_currency)
            rate = client.get_pair_rate(src, dst)
            self._print(format_pair_rate(src, dst, rate, fmt, color))
        elif args.command == "codes":
            self._print(format_currency_codes(client.get_supported_codes(), fmt, color))

    def _clear_cache(self, args: argparse.Namespace) -> None:
        # Opens the configured backend even when caching is switched off
        kind = args.cache_backend or self.settings.cache_backend
        backend = make_cache_backend(kind, self.settings.cache_db_path)
        try:
            backend.clear_all()
        finally:
            backend.close()
        self._print(f"Cache cleared ({kind})")

    def _config(self, action: Optional[str], args: argparse.Namespace, config: UserConfig) -> None:
        if action == "set":
            message = config.set_value(args.key, args.value)
            config.save(self.config_path)
            self._print(message)
        elif action == "reset":
            UserConfig().save(self.config_path)
            self._print("Configuration reset to defaults")
        else:
            color = self.out.isatty() and bool(config.use_color)
            self._print(
                "\n".join(
                    [
                        heading("Current Configuration:", color),
                        f"API Key: {config.masked_api_key()}",
                        f"Auth Method: {config.auth_method or 'Not set'}",
                        f"Default Format: {config.default_format or 'Not set'}",
                        f"Use Color: {config.use_color}",
                        f"Use Cache: {config.use_cache}",
                        "",
                        heading("Config File Location:", color),
                        str(self.config_path),
                    ]
                )
            )

    def _print(self, text: str) -> None:
        print(text, file=self.out)


def main(argv: Optional[List[str]] = None) -> int:
    return CLI().run(argv)


if __name__ == "__main__":
    sys.exit(main())
