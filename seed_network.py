import os
import json

import structlog

from app import create_app
from courier.models import db, Depot, DepotRoute, Package, DepotPackagePrice
from courier.numbering import ensure_counters

logger = structlog.get_logger(__name__)


def load_network(data: dict) -> dict:
    """
    Seed depots, forwarding routes, packages and depot price overrides.

    Expecting:
      {"depots":   [{"code", "name", "type", "location"?}],
       "routes":   [{"from": code, "to": code}],
       "packages": [{"name", "base_price", "depot_prices"?: {code: price}}]}

    Existing rows (by depot code / route pair / package name) are skipped.
    """
    stats = {"depots": 0, "routes": 0, "packages": 0, "prices": 0, "skipped": 0}

    depots_by_code = {d.code: d for d in Depot.query.all()}
    for row in data.get("depots") or []:
        code = (row.get("code") or "").strip().upper()
        name = (row.get("name") or "").strip()
        dtype = (row.get("type") or "managed").strip().lower()

        if not code or not name:
            stats["skipped"] += 1
            continue
        if code in depots_by_code:
            stats["skipped"] += 1
            continue

        depot = Depot(
            code=code,
            name=name,
            type=dtype,
            location=(row.get("location") or "").strip() or None,
        )
        db.session.add(depot)
        depots_by_code[code] = depot
        stats["depots"] += 1

    db.session.flush()

    for row in data.get("routes") or []:
        origin = depots_by_code.get((row.get("from") or "").strip().upper())
        target = depots_by_code.get((row.get("to") or "").strip().upper())
        if origin is None or target is None:
            stats["skipped"] += 1
            continue

        existing = DepotRoute.query.filter_by(
            origin_depot_id=origin.id, forwarding_depot_id=target.id
        ).first()
        if existing:
            stats["skipped"] += 1
            continue

        db.session.add(DepotRoute(origin_depot_id=origin.id, forwarding_depot_id=target.id))
        stats["routes"] += 1

    for idx, row in enumerate(data.get("packages") or [], start=1):
        name = (row.get("name") or "").strip()
        if not name:
            stats["skipped"] += 1
            continue

        pkg = Package.query.filter_by(name=name).first()
        if pkg is None:
            pkg = Package(
                name=name,
                base_price=float(row.get("base_price") or 0.0),
                sort_order=int(row.get("sort_order") or idx),
            )
            db.session.add(pkg)
            db.session.flush()
            stats["packages"] += 1

        for code, price in (row.get("depot_prices") or {}).items():
            depot = depots_by_code.get(code.strip().upper())
            if depot is None:
                stats["skipped"] += 1
                continue
            existing = DepotPackagePrice.query.filter_by(depot_id=depot.id, package_id=pkg.id).first()
            if existing:
                continue
            db.session.add(DepotPackagePrice(depot_id=depot.id, package_id=pkg.id, price=float(price)))
            stats["prices"] += 1

    db.session.commit()

    stats["counters"] = ensure_counters()
    logger.info("network_seeded", **stats)
    return stats


def main():
    base_dir = os.path.abspath(os.path.dirname(__file__))
    json_path = os.path.join(base_dir, "data", "network.json")

    if not os.path.exists(json_path):
        raise FileNotFoundError(f"JSON file not found: {json_path}")

    with open(json_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    app = create_app()

    with app.app_context():
        db.create_all()
        load_network(data)


if __name__ == "__main__":
    main()
