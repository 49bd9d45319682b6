from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import sessionmaker

from ..models import Business
from .errors import TenantNotFound
from .menu import inventory_from_document, menu_from_document, menu_key, normalize_menu
from .types import Menu

logger = logging.getLogger(__name__)


def normalize_slug(slug: str) -> str:
    return (slug or "").strip().lower()


@dataclass(frozen=True)
class Tenant:
    id: str
    name: str
    phone_number: Optional[str] = None
    currency: str = "USD"
    menu: Menu = field(default_factory=dict)
    inventory: Dict[str, int] = field(default_factory=dict)
    check_in_enabled: bool = True
    check_in_minutes: Optional[int] = None
    email: Optional[str] = None

    @property
    def tracks_inventory(self) -> bool:
        return bool(self.inventory)


def _tenant_from_row(row: Business) -> Tenant:
    return Tenant(
        id=row.id,
        name=row.name,
        phone_number=row.phone_number,
        currency=row.currency or "USD",
        menu=normalize_menu(json.loads(row.menu_json or "{}")),
        inventory={k: int(v) for k, v in json.loads(row.inventory_json or "{}").items()},
        check_in_enabled=bool(row.check_in_enabled),
        check_in_minutes=row.check_in_minutes,
        email=row.email,
    )


class TenantDirectory:
    """Read side of the tenant data: menus, stock levels, check-in settings.

    Reads always go to the database so stock and prices are current at the
    moment of the call; orders snapshot prices themselves.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, business_id: str) -> Optional[Tenant]:
        with self._session_factory() as db:
            row = db.get(Business, normalize_slug(business_id))
            return _tenant_from_row(row) if row else None

    def get_by_phone(self, phone_number: str) -> Optional[Tenant]:
        with self._session_factory() as db:
            row = db.query(Business).filter(Business.phone_number == (phone_number or "").strip()).first()
            return _tenant_from_row(row) if row else None

    def all(self) -> List[Tenant]:
        with self._session_factory() as db:
            return [_tenant_from_row(row) for row in db.query(Business).order_by(Business.id).all()]

    def get_menu(self, business_id: str) -> Menu:
        tenant = self.get(business_id)
        if tenant is None:
            raise TenantNotFound(business_id)
        return tenant.menu

    def get_stock(self, business_id: str, item: str) -> Optional[int]:
        """Quantity on hand; None when the business doesn't track stock at all."""
        tenant = self.get(business_id)
        if tenant is None or not tenant.tracks_inventory:
            return None
        return tenant.inventory.get(menu_key(item), 0)

    def get_login(self, email: str) -> Optional[Tuple[str, str]]:
        """(business id, password hash) for a merchant email, if it has a password set."""
        with self._session_factory() as db:
            row = db.query(Business).filter(Business.email == (email or "").strip().lower()).first()
            if not row or not row.password_hash:
                return None
            return row.id, row.password_hash

    # --- writes (seeding / admin) ---
    def save(
        self,
        business_id: str,
        name: str,
        menu: Dict[str, Any],
        inventory: Optional[Dict[str, int]] = None,
        phone_number: Optional[str] = None,
        currency: str = "USD",
        check_in_enabled: bool = True,
        check_in_minutes: Optional[int] = None,
        email: Optional[str] = None,
        password_hash: Optional[str] = None,
    ) -> Tenant:
        slug = normalize_slug(business_id)
        menu_json = json.dumps({k: str(v) for k, v in normalize_menu(menu).items()})
        inventory_json = json.dumps({menu_key(k): int(v) for k, v in (inventory or {}).items()})
        with self._session_factory() as db:
            row = db.get(Business, slug) or Business(id=slug)
            row.name = name
            row.phone_number = phone_number
            row.currency = currency
            row.menu_json = menu_json
            row.inventory_json = inventory_json
            row.check_in_enabled = check_in_enabled
            row.check_in_minutes = check_in_minutes
            if email is not None:
                row.email = email.strip().lower()
            if password_hash is not None:
                row.password_hash = password_hash
            db.add(row)
            db.commit()
            return _tenant_from_row(row)

    def set_stock(self, business_id: str, item: str, quantity: int) -> None:
        with self._session_factory() as db:
            row = db.get(Business, normalize_slug(business_id))
            if row is None:
                raise TenantNotFound(business_id)
            inventory = json.loads(row.inventory_json or "{}")
            inventory[menu_key(item)] = max(0, int(quantity))
            row.inventory_json = json.dumps(inventory)
            db.commit()

    def seed_from_dir(self, menus_dir: Path) -> int:
        """Load every <menus_dir>/**/menu.json whose business isn't in the database yet."""
        if not menus_dir.exists():
            logger.warning("Menus dir %s does not exist", menus_dir)
            return 0

        seeded = 0
        for path in sorted(menus_dir.rglob("menu.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError):
                logger.warning("Skipping unreadable menu %s", path, exc_info=True)
                continue

            meta = data.get("meta") or {}
            slug = normalize_slug(str(meta.get("slug") or path.parent.name))
            if self.get(slug):
                continue

            check_in = meta.get("check_in") or {}
            self.save(
                business_id=slug,
                name=str(meta.get("name") or slug),
                menu=menu_from_document(data),
                inventory=inventory_from_document(data),
                phone_number=meta.get("phone"),
                currency=str(meta.get("currency") or "USD").upper(),
                check_in_enabled=bool(check_in.get("enabled", True)),
                check_in_minutes=check_in.get("minutes"),
                email=meta.get("email"),
            )
            logger.info("Seeded business %s from %s", slug, path)
            seeded += 1
        return seeded
