"""CLI entry point for the household inventory app."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from .config import load_config
from .db import InventoryDB
from .models import STATUS_HOME
from .session import AnonymousAuth
from .vision import AIRequestError, ImagePayload, create_backend
from .vision.prompts import MODES


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="inventar",
        description="Domácí inventář: nákupní seznam, zásoby a AI skenování účtenek",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Cesta ke konfiguračnímu souboru (TOML)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Podrobné logování"
    )

    sub = parser.add_subparsers(dest="command")

    # serve
    serve_parser = sub.add_parser("serve", help="Spustit HTTP API")
    serve_parser.add_argument("--host", type=str, default=None)
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.add_argument(
        "--static", type=str, default=None, help="Složka s frontendem"
    )

    # scan
    scan_parser = sub.add_parser("scan", help="Rozpoznat položky z fotky")
    scan_parser.add_argument("--image", type=str, required=True, help="Soubor s fotkou")
    scan_parser.add_argument("--mode", choices=MODES, default="fridge")
    scan_parser.add_argument("--json", action="store_true", help="Výstup ve formátu JSON")

    # recipes
    recipes_parser = sub.add_parser("recipes", help="Navrhnout recepty ze zásob")
    recipes_parser.add_argument(
        "--uid", type=str, default=None, help="Uživatel, jehož zásoby se použijí"
    )
    recipes_parser.add_argument(
        "--item", type=str, action="append", default=[], help="Surovina (lze opakovat)"
    )
    recipes_parser.add_argument("--json", action="store_true", help="Výstup ve formátu JSON")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as e:
        print(f"Chyba konfigurace: {e}", file=sys.stderr)
        sys.exit(2)

    match args.command:
        case "serve":
            _cmd_serve(config, args)
        case "scan":
            asyncio.run(_cmd_scan(config, args))
        case "recipes":
            asyncio.run(_cmd_recipes(config, args))


def _cmd_serve(config, args) -> None:
    import uvicorn

    from .web import create_app

    app = create_app(config, static_dir=args.static)
    uvicorn.run(
        app,
        host=args.host or config.server.host,
        port=args.port or config.server.port,
    )


async def _cmd_scan(config, args) -> None:
    try:
        image = ImagePayload.from_path(args.image)
    except OSError as e:
        print(f"Nepodařilo se načíst obrázek: {e}", file=sys.stderr)
        sys.exit(1)

    backend = create_backend(config)
    print("🔍 Analyzuji fotku...", file=sys.stderr)
    try:
        candidates = await backend.analyze_image(image, args.mode)
    except (AIRequestError, ValueError) as e:
        print(f"Analýza fotky selhala: {e}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps([c.to_dict() for c in candidates], ensure_ascii=False, indent=2))
        return

    print(f"\n🧾 Nalezené položky ({len(candidates)}):")
    for c in candidates:
        amount = f"{c.amount:g} {c.unit}"
        days = f"  ~{c.expiry_estimate_days} dní" if c.expiry_estimate_days else ""
        print(f"  {c.emoji} {c.name:<24} {amount:<10} [{c.category}]{days}")


async def _cmd_recipes(config, args) -> None:
    names = list(args.item)
    if args.uid:
        inventory = InventoryDB(config.app.db_path, catalog=config.catalog)
        try:
            session = AnonymousAuth(inventory.connection, config.app.app_id).resume(args.uid)
            if session is None:
                print(f"Uživatel {args.uid} neexistuje.", file=sys.stderr)
                sys.exit(1)
            names += [i.name for i in inventory.list_items(session, status=STATUS_HOME)]
        finally:
            inventory.close()

    if not names:
        print("Doma nic není. Přidejte --item nebo --uid.", file=sys.stderr)
        sys.exit(1)

    backend = create_backend(config)
    print("🍳 Vymýšlím recepty...", file=sys.stderr)
    try:
        recipes = await backend.suggest_recipes(names)
    except (AIRequestError, ValueError) as e:
        print(f"Recepty se nepodařilo vygenerovat: {e}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps([r.to_dict() for r in recipes], ensure_ascii=False, indent=2))
        return

    for r in recipes:
        print(f"\n{r.title}")
        if r.why:
            print(f"  {r.why}")
        if r.ingredients_used:
            print(f"  Suroviny: {', '.join(r.ingredients_used)}")
        for n, step in enumerate(r.steps, 1):
            print(f"  {n}. {step}")


if __name__ == "__main__":
    main()
