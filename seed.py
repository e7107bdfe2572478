"""
Initial data for an empty database.

Each table is seeded only when it holds no rows, so running this against a
live database is safe.
"""

import logging
from typing import Any, Dict

from auth import hash_password
from database import GatewayError
from schemas import TABLES

logger = logging.getLogger(__name__)

INITIAL_CATEGORIES = [
    {
        "name": "Pennyekart Free Registration",
        "description": "Totally free registration with free delivery between 2pm to 6pm. "
                       "Basic level access to hybrid ecommerce platform.",
        "actual_fee": 0,
        "offer_fee": 0,
    },
    {
        "name": "Pennyekart Paid Registration",
        "description": "Premium registration with any time delivery between 8am to 7pm. "
                       "Full access to all platform features.",
        "actual_fee": 500,
        "offer_fee": 299,
    },
    {
        "name": "Farmelife",
        "description": "Connected with dairy farm, poultry farm and agricultural businesses.",
        "actual_fee": 750,
        "offer_fee": 499,
    },
    {
        "name": "Organelife",
        "description": "Connected with vegetable and house gardening, especially terrace vegetable farming.",
        "actual_fee": 600,
        "offer_fee": 399,
    },
    {
        "name": "Foodlife",
        "description": "Connected with food processing business and culinary services.",
        "actual_fee": 800,
        "offer_fee": 599,
    },
    {
        "name": "Entrelife",
        "description": "Connected with skilled projects like stitching, art works, various home services.",
        "actual_fee": 700,
        "offer_fee": 499,
    },
    {
        "name": "Job Card",
        "description": "Special offer card with access to all categories, special discounts, and investment "
                       "benefits. Best choice for comprehensive registration.",
        "actual_fee": 2000,
        "offer_fee": 999,
    },
]

INITIAL_PANCHAYATHS = [
    {"name": "Amarambalam", "district": "Malappuram"},
    {"name": "Kondotty", "district": "Malappuram"},
    {"name": "Perinthalmanna", "district": "Malappuram"},
]

INITIAL_ANNOUNCEMENTS = [
    {
        "title": "Welcome to E-LIFE SOCIETY",
        "content": "Join our hybrid ecommerce platform and start your self-employment journey today!",
    },
    {
        "title": "Special Offer on Job Card",
        "content": "Get access to all categories with our special Job Card registration. Limited time offer!",
    },
]


def _seed_table(gateway, table: str, rows) -> int:
    if not rows or gateway.select(table, limit=1):
        return 0
    logger.info("No %s found, inserting initial data...", table)
    for row in rows:
        gateway.insert(table, {**row, "is_active": True})
    return len(rows)


def setup_initial_data(gateway, settings) -> Dict[str, Any]:
    inserted: Dict[str, int] = {}
    try:
        inserted["categories"] = _seed_table(gateway, "categories", INITIAL_CATEGORIES)
        inserted["panchayaths"] = _seed_table(gateway, "panchayaths", INITIAL_PANCHAYATHS)

        admin_rows = []
        if settings.initial_admin_username and settings.initial_admin_password:
            admin_rows.append({
                "username": settings.initial_admin_username,
                "password_hash": hash_password(settings.initial_admin_password),
                "role": "super",
            })
        else:
            logger.warning("INITIAL_ADMIN_USERNAME/INITIAL_ADMIN_PASSWORD not set, no admin seeded")
        inserted["admins"] = _seed_table(gateway, "admins", admin_rows)
    except GatewayError as e:
        logger.error("Database setup failed: %s", e)
        return {"success": False, "message": str(e), "inserted": inserted}

    try:
        inserted["announcements"] = _seed_table(gateway, "announcements", INITIAL_ANNOUNCEMENTS)
    except GatewayError as e:
        # announcements are not critical
        logger.error("Error inserting announcements: %s", e)

    logger.info("Database setup completed: %s", inserted)
    return {"success": True, "message": "Database setup completed successfully!", "inserted": inserted}


def check_database_tables(gateway) -> Dict[str, Dict[str, Any]]:
    results: Dict[str, Dict[str, Any]] = {}
    for table in TABLES:
        try:
            results[table] = {"exists": True, "count": gateway.count(table)}
        except GatewayError as e:
            results[table] = {"exists": False, "error": str(e)}
    return results
