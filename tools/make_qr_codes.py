from __future__ import annotations

import argparse
from pathlib import Path
from urllib.parse import quote

import qrcode

from app.db import Base, make_engine, make_session_factory
from app.ordering.menu_store import Tenant, TenantDirectory
from app.settings import settings

PROJECT_ROOT = Path(__file__).resolve().parents[1]
MENUS_DIR = Path(settings.menus_dir) if settings.menus_dir else PROJECT_ROOT / "data"
OUT_DIR = PROJECT_ROOT / "qrcodes"


def chat_url(tenant: Tenant, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/r/{tenant.id}"


def sms_url(tenant: Tenant) -> str | None:
    """`sms:` link that opens the customer's messaging app with "menu" pre-filled."""
    if not tenant.phone_number:
        return None
    return f"sms:{tenant.phone_number}?body={quote('menu')}"


def make_codes(tenants: TenantDirectory, base_url: str, out_dir: Path) -> int:
    out_dir.mkdir(parents=True, exist_ok=True)
    made = 0
    for tenant in tenants.all():
        targets = [("chat", chat_url(tenant, base_url)), ("sms", sms_url(tenant))]
        for kind, url in targets:
            if not url:
                print(f"SKIP {tenant.id} ({kind}): no phone number")
                continue
            out_path = out_dir / f"{tenant.id}__{kind}.png"
            qrcode.make(url).save(out_path)
            print(f"OK  {tenant.id}  ->  {out_path}  ({url})")
            made += 1
    return made


def main() -> None:
    ap = argparse.ArgumentParser(description="Generate chat and text-to-order QR codes per business.")
    ap.add_argument("--base-url", default=settings.public_base_url)
    ap.add_argument("--out", type=Path, default=OUT_DIR)
    args = ap.parse_args()

    engine = make_engine(settings.database_url)
    Base.metadata.create_all(bind=engine)
    tenants = TenantDirectory(make_session_factory(engine))
    tenants.seed_from_dir(MENUS_DIR)

    made = make_codes(tenants, args.base_url, args.out)
    if not made:
        raise SystemExit(f"No businesses found (menus dir: {MENUS_DIR})")
    print(f"\nDone. Generated {made} QR codes in: {args.out}")


if __name__ == "__main__":
    main()
