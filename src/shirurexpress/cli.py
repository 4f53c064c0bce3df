from __future__ import annotations

from datetime import datetime, timedelta

from .config import AppConfig
from .db import Db
from .domain import Actor, Role
from .errors import MarketplaceError
from .importers import ImportFileError, import_products_csv, import_products_json
from .repositories.order_event_repo import OrderEventRepository
from .repositories.order_item_repo import OrderItemRepository
from .repositories.order_repo import OrderRepository
from .repositories.product_repo import ProductRepository
from .repositories.provider_repo import ProviderRepository
from .repositories.rider_repo import RiderRepository
from .reports import revenue_report, rider_leaderboard
from .services.order_service import OrderService


def _prompt(msg: str) -> str:
    return input(msg).strip()


def run_cli(db: Db, cfg: AppConfig, admin_id: int = 0) -> None:
    provider_repo = ProviderRepository()
    product_repo = ProductRepository()
    order_repo = OrderRepository()

    service = OrderService(
        order_repo=order_repo,
        order_item_repo=OrderItemRepository(),
        order_event_repo=OrderEventRepository(),
        product_repo=product_repo,
        provider_repo=provider_repo,
        rider_repo=RiderRepository(),
        business=cfg.business,
    )
    admin = Actor(user_id=admin_id, role=Role.ADMIN)

    while True:
        print(f"\n=== {cfg.name} operator CLI ===")
        print("1) List providers")
        print("2) List products of a provider")
        print("3) List orders (totals view)")
        print("4) Cancel an order (admin)")
        print("5) Import products CSV")
        print("6) Import products JSON")
        print("7) Report revenue + rider leaderboard")
        print("0) Exit")

        choice = _prompt("> ")
        try:
            if choice == "0":
                return

            elif choice == "1":
                category = _prompt("category slug (empty = all): ") or None
                with db.session() as conn:
                    rows = provider_repo.list(conn, category_slug=category, limit=50)
                for r in rows:
                    print(f'#{r["id"]} {r["business_name"]} [{r["category_slug"]}] rating={r["rating"]}')

            elif choice == "2":
                provider_id = int(_prompt("provider_id: "))
                with db.session() as conn:
                    rows = product_repo.list(conn, provider_id=provider_id, limit=200)
                for r in rows:
                    stock = "-" if r["stock_qty"] is None else r["stock_qty"]
                    print(f'#{r["id"]} {r["sku"]} {r["name"]} price={r["unit_price"]} stock={stock}')

            elif choice == "3":
                with db.session() as conn:
                    rows = order_repo.list_totals_view(conn, limit=30)
                for r in rows:
                    print(
                        f'order#{r["order_id"]} {r["kind"]} status={r["status"]} customer={r["customer_name"]} '
                        f'provider={r["provider_name"]} items={r["item_count"]} total={r["grand_total"]}'
                    )

            elif choice == "4":
                order_id = int(_prompt("order_id: "))
                with db.transaction() as conn:
                    order = service.cancel_order(conn, order_id=order_id, actor=admin)
                print(f"Order #{order.id} is now {order.status.value}")

            elif choice == "5":
                provider_id = int(_prompt("provider_id: "))
                path = _prompt("path to products.csv: ")
                with db.transaction() as conn:
                    n = import_products_csv(conn, path, provider_id, product_repo)
                print(f"Imported/updated products: {n}")

            elif choice == "6":
                provider_id = int(_prompt("provider_id: "))
                path = _prompt("path to menu.json: ")
                with db.transaction() as conn:
                    n = import_products_json(conn, path, provider_id, product_repo)
                print(f"Imported/updated products: {n}")

            elif choice == "7":
                with db.session() as conn:
                    d2 = datetime.now()
                    d1 = d2 - timedelta(days=30)
                    rep = revenue_report(conn, d1, d2)
                    riders = rider_leaderboard(conn, limit=10)
                print(f"Revenue report (last 30 days): {rep}")
                print("Top riders:")
                for r in riders:
                    print(f'  {r["username"]} deliveries={r["total_deliveries"]} fees={r["delivery_fees_earned"]}')

            else:
                print("Unknown choice.")

        except MarketplaceError as e:
            print(f"[{e.kind.upper()}] {e}")
        except ImportFileError as e:
            print(f"[IMPORT ERROR] {e}")
        except ValueError as e:
            print(f"[VALUE ERROR] {e}")
