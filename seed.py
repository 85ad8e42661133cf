"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 4 clients, 6 drivers and 1 admin (prints a bearer token for each)
  - 8 vehicles (one or two per driver, around Cotonou)
  - 4 sample orders (pending, in transit with a tracking trail, completed,
    completed with a payment proof awaiting confirmation)
  - 1 pending wallet recharge
"""

import asyncio
from datetime import timedelta

from sqlalchemy import select, text

from src.api.security import TokenAuthority
from src.domain.distance import haversine_km, path_length_km, round_half_up
from src.domain.entities import utcnow
from src.domain.enums import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ServiceType,
    UserType,
    VehicleCategory,
    WalletTxStatus,
    WalletTxType,
)
from src.domain.pricing import PricingEngine
from src.infrastructure.database import async_session_factory, engine
from src.infrastructure.models import (
    OrderModel,
    SequenceModel,
    TrackingPointModel,
    UserModel,
    VehicleModel,
    WalletTransactionModel,
)

# Cotonou port area (approx)
PORT_LAT, PORT_LON = 6.3486, 2.4330


USERS = [
    {"name": "Aïcha Dossou", "phone": "+22997000001", "type": UserType.CLIENT},
    {"name": "Koffi Mensah", "phone": "+22997000002", "type": UserType.CLIENT},
    {"name": "Chantal Agbo", "phone": "+22997000003", "type": UserType.CLIENT},
    {"name": "Rodrigue Hounkpè", "phone": "+22997000004", "type": UserType.CLIENT},
    {"name": "Serge Ahouansou", "phone": "+22996000001", "type": UserType.DRIVER},
    {"name": "Mathieu Kpadé", "phone": "+22996000002", "type": UserType.DRIVER},
    {"name": "Ibrahim Saka", "phone": "+22996000003", "type": UserType.DRIVER},
    {"name": "Firmin Zinsou", "phone": "+22996000004", "type": UserType.DRIVER},
    {"name": "Gildas Tchibozo", "phone": "+22996000005", "type": UserType.DRIVER},
    {"name": "Nadine Akplogan", "phone": "+22996000006", "type": UserType.DRIVER},
    {"name": "Ops En-Route", "phone": "+22990000000", "type": UserType.ADMIN},
]

# (driver index among drivers, category, type, brand, plate, min price, per km)
VEHICLES = [
    (0, VehicleCategory.TRANSPORT, "camion_10t", "Mercedes Actros", "AB 1234 RB", 15000, 750),
    (0, VehicleCategory.TRANSPORT, "camionnette", "Toyota Dyna", "AB 2234 RB", 8000, 500),
    (1, VehicleCategory.CONSTRUCTION, "tractopelle", "JCB 3CX", "BC 3345 RB", 60000, None),
    (2, VehicleCategory.LOGISTICS, "porte_conteneur", "Renault Kerax", "CD 4456 RB", 40000, 1200),
    (3, VehicleCategory.AGRICULTURE, "tracteur", "Massey Ferguson", "DE 5567 RB", 25000, None),
    (4, VehicleCategory.TRANSPORT, "benne", "Howo Sinotruk", "EF 6678 RB", 20000, 900),
    (5, VehicleCategory.TRANSPORT, "camionnette", "Isuzu NPR", "FG 7789 RB", None, None),
    (5, VehicleCategory.LOGISTICS, "plateau", "MAN TGS", "GH 8890 RB", 30000, 1000),
]

# Tracking trail of the in-transit / completed orders
TRAIL = [(6.37, 2.39), (6.40, 2.42), (6.45, 2.50)]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Users ─────────────────────────────────────────────────────
        users = []
        for u in USERS:
            m = UserModel(
                name=u["name"],
                phone=u["phone"],
                user_type=u["type"],
                driver_is_verified=u["type"] == UserType.DRIVER,
            )
            session.add(m)
            users.append(m)
        await session.flush()
        clients = [u for u in users if u.user_type == UserType.CLIENT]
        drivers = [u for u in users if u.user_type == UserType.DRIVER]
        print(f"  Created {len(users)} users")

        # ── Vehicles ──────────────────────────────────────────────────
        vehicles = []
        for driver_idx, category, vtype, brand, plate, minimum, per_km in VEHICLES:
            m = VehicleModel(
                driver_id=drivers[driver_idx].id,
                category=category,
                vehicle_type=vtype,
                brand=brand,
                plate_number=plate,
                minimum_price=minimum,
                price_per_km=per_km,
                is_available=True,
            )
            session.add(m)
            vehicles.append(m)
        await session.flush()
        print(f"  Created {len(vehicles)} vehicles")

        # ── Orders ────────────────────────────────────────────────────
        pricing = PricingEngine()
        now = utcnow()
        pickup = {"address": "Port autonome de Cotonou", "lat": PORT_LAT, "lon": PORT_LON}
        dropoff = {"address": "Abomey-Calavi", "lat": 6.4485, "lon": 2.3557}
        orders_data = [
            (clients[0], vehicles[0], OrderStatus.PENDING, PaymentStatus.PENDING),
            (clients[1], vehicles[3], OrderStatus.IN_TRANSIT, PaymentStatus.PENDING),
            (clients[2], vehicles[5], OrderStatus.COMPLETED, PaymentStatus.CONFIRMED),
            (clients[3], vehicles[7], OrderStatus.COMPLETED, PaymentStatus.PROOF_SUBMITTED),
        ]

        orders = []
        for n, (client, vehicle, status, payment_status) in enumerate(orders_data, start=1):
            rates = pricing.rates_for(vehicle.minimum_price, vehicle.price_per_km)
            quote = pricing.quote(
                rates,
                ServiceType.TRANSPORT,
                (pickup["lat"], pickup["lon"]),
                (dropoff["lat"], dropoff["lon"]),
            )
            order = OrderModel(
                order_number=f"ER-{now.year}-{n:05d}",
                client_id=client.id,
                driver_id=vehicle.driver_id,
                vehicle_id=vehicle.id,
                status=status,
                service_type=ServiceType.TRANSPORT,
                pickup=pickup,
                dropoff=dropoff,
                cargo={"kind": "conteneur", "estimated_weight_kg": 8000},
                estimated_km=round_half_up(quote.estimated_km, 1),
                payment_method=PaymentMethod.MOBILE_MONEY,
                payment_amount=quote.amount,
                payment_platform_fee=quote.platform_fee,
                payment_driver_share=quote.driver_share,
                payment_status=payment_status,
            )
            if status != OrderStatus.PENDING:
                order.accepted_at = now - timedelta(hours=3)
                order.started_at = now - timedelta(hours=2)
            if status == OrderStatus.COMPLETED:
                order.completed_at = now - timedelta(hours=1)
                order.actual_km = round_half_up(path_length_km(TRAIL), 1)
            if payment_status != PaymentStatus.PENDING:
                order.payment_proof_transaction_id = f"MM{n:08d}"
                order.payment_proof_submitted_at = now - timedelta(minutes=50)
            session.add(order)
            orders.append(order)
        await session.flush()

        for order in orders:
            if order.status == OrderStatus.PENDING:
                continue
            for i, (lat, lon) in enumerate(TRAIL):
                session.add(
                    TrackingPointModel(
                        order_id=order.id,
                        lat=lat,
                        lon=lon,
                        speed=40.0,
                        recorded_at=now - timedelta(hours=2) + timedelta(minutes=20 * i),
                    )
                )
        print(f"  Created {len(orders)} orders")

        # ── Driver stats for completed orders ─────────────────────────
        for order in orders:
            if order.status == OrderStatus.COMPLETED:
                driver = next(d for d in drivers if d.id == order.driver_id)
                driver.total_trips = (driver.total_trips or 0) + 1
                driver.total_km = (driver.total_km or 0.0) + order.actual_km

        # ── Wallet ────────────────────────────────────────────────────
        session.add(
            WalletTransactionModel(
                user_id=drivers[0].id,
                tx_type=WalletTxType.RECHARGE,
                amount=10000,
                provider="mtn",
                provider_transaction_id="MTN00012345",
                status=WalletTxStatus.PENDING,
            )
        )
        print("  Created 1 pending wallet recharge")

        # ── Order number sequence ─────────────────────────────────────
        sequence = await session.get(SequenceModel, "order_number")
        if sequence is None:
            session.add(SequenceModel(name="order_number", value=len(orders)))
        else:
            sequence.value = len(orders)

        await session.commit()

        # ── Dev tokens ────────────────────────────────────────────────
        tokens = TokenAuthority()
        rows = await session.execute(select(UserModel).order_by(UserModel.id))
        print("\nBearer tokens:")
        for user in rows.scalars():
            print(f"  {user.user_type.value:<6} {user.name:<20} {tokens.issue(user.id, user.user_type)}")

        print(
            f"\nSeed complete! Port -> Abomey-Calavi is "
            f"{haversine_km(PORT_LAT, PORT_LON, dropoff['lat'], dropoff['lon']):.1f} km."
        )


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
