"""
Seed the local database with sample users, stores, localities and assignments.

Usage:
  python scripts/seed_test_data.py

This script is idempotent: users are upserted by name, stores by store_id,
localities by (nume, judet); assignments are only added when none exist.
"""
import sys
import os
from datetime import timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from deplasari.db import SessionLocal, Base, engine
from deplasari.models.models import (
    Assignment,
    Locality,
    Store,
    User,
    STATUS_ASSIGNED,
    STATUS_COMPLETED,
    USER_FREE,
)
from deplasari.auth.security import get_password_hash
from deplasari.services.time_rules import utcnow


USERS = [
    ("Admin", "admin", "admin@example.com", "admin"),
    ("Ion Popescu", "ipopescu", "ion.popescu@example.com", "user"),
    ("Maria Ionescu", "mionescu", "maria.ionescu@example.com", "user"),
    ("Andrei Dumitru", "adumitru", "andrei.dumitru@example.com", "user"),
]

STORES = [
    ("101", "Magazin 101 - Ploiesti", "Str. Republicii 10", "Ploiesti", "Prahova"),
    ("102", "Magazin 102 - Brasov", "Str. Lunga 5", "Brasov", "Brasov"),
    ("103", "Magazin 103 - Pitesti", "Bd. Republicii 20", "Pitesti", "Arges"),
]

LOCALITIES = [
    ("Ploiesti", "Prahova"),
    ("Campina", "Prahova"),
    ("Brasov", "Brasov"),
    ("Fagaras", "Brasov"),
    ("Pitesti", "Arges"),
]


def ensure_user(session, name: str, username: str, email: str, role: str) -> User:
    user = session.query(User).filter(User.name == name).first()
    if user is None:
        user = User(name=name, status=USER_FREE, total_hours=0, created_at=utcnow())
        session.add(user)
    user.username = username
    user.email = email
    user.role = role
    if not user.password_hash:
        user.password_hash = get_password_hash("password123")
    return user


def ensure_store(session, store_id, description, address, city, county) -> Store:
    store = session.query(Store).filter(Store.store_id == store_id).first()
    if store is None:
        store = Store(store_id=store_id)
        session.add(store)
    store.description = description
    store.address = address
    store.city = city
    store.county = county
    return store


def main():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        for row in USERS:
            ensure_user(session, *row)
        for row in STORES:
            ensure_store(session, *row)
        for nume, judet in LOCALITIES:
            exists = session.query(Locality).filter(Locality.nume == nume, Locality.judet == judet).first()
            if not exists:
                session.add(Locality(nume=nume, judet=judet))

        if session.query(Assignment).count() == 0:
            now = utcnow()
            session.add(Assignment(
                type="Deschidere",
                location="Ploiesti, Prahova",
                team_lead="Ion Popescu",
                members=["Maria Ionescu"],
                start_date=now - timedelta(days=3, hours=8),
                completion_date=now - timedelta(days=3),
                status=STATUS_COMPLETED,
                hours=8,
                km=124,
                store_number="101",
                county="Prahova",
                city="Ploiesti",
                store_points=["101"],
                car_plate="IF 65 XOX",
                created_at=now - timedelta(days=4),
            ))
            session.add(Assignment(
                type="Interventie",
                location="Brasov, Brasov",
                team_lead="Andrei Dumitru",
                members=[],
                start_date=now + timedelta(days=1),
                status=STATUS_ASSIGNED,
                store_number="102",
                county="Brasov",
                city="Brasov",
                end_location="Chitila, Romania",
                created_at=now,
            ))
        session.commit()
        print("Seed completed.")
        print("Login with username 'admin' and password 'password123'.")
    finally:
        session.close()


if __name__ == "__main__":
    main()
