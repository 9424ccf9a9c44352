"""Seed script for a demo assembly with owners, units and an operator."""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from assembly.db.session import SessionLocal, engine
from assembly.models import Assembly, Base, InternalHolder, Member, MemberRole, Unit

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_ASSEMBLY_ID = "demo-assembly"

# (document, name, phone, units as (number, coefficient))
DEMO_OWNERS = [
    ("CC-1001", "Laura Gómez", "+573001110001", [("101", "0.18"), ("102", "0.12")]),
    ("CC-1002", "Andrés Pérez", "+573001110002", [("201", "0.25")]),
    ("CC-1003", "María Torres", "+573001110003", [("301", "0.20")]),
    ("CC-1004", "Julián Rojas", None, [("401", "0.15"), ("402", "0.10")]),
]


def seed(session: Session) -> None:
    """Seed the demo assembly; existing members and units are left untouched."""

    assembly = session.get(Assembly, DEMO_ASSEMBLY_ID)
    if assembly is None:
        assembly = Assembly(id=DEMO_ASSEMBLY_ID, name="Demo Annual Assembly")
        session.add(assembly)
        session.flush()
        logger.info("Created assembly %s", DEMO_ASSEMBLY_ID)
    else:
        logger.info("Assembly %s already exists", DEMO_ASSEMBLY_ID)

    existing = {
        member.document_number: member
        for member in session.scalars(select(Member).where(Member.assembly_id == DEMO_ASSEMBLY_ID))
    }
    if "OP-0001" not in existing:
        session.add(
            Member(
                assembly_id=DEMO_ASSEMBLY_ID,
                full_name="Front Desk",
                document_number="OP-0001",
                role=MemberRole.OPERATOR,
            )
        )
        logger.info("Added operator OP-0001")

    numbers = set(session.scalars(select(Unit.number).where(Unit.assembly_id == DEMO_ASSEMBLY_ID)))
    for document, name, phone, units in DEMO_OWNERS:
        owner = existing.get(document)
        if owner is None:
            owner = Member(
                assembly_id=DEMO_ASSEMBLY_ID,
                full_name=name,
                document_number=document,
                phone_number=phone,
            )
            session.add(owner)
            session.flush()
            logger.info("Added owner %s", document)
        for number, coefficient in units:
            if number in numbers:
                continue
            unit = Unit(
                assembly_id=DEMO_ASSEMBLY_ID,
                number=number,
                coefficient=Decimal(coefficient),
                owner_id=owner.id,
            )
            unit.rights_holder = InternalHolder(member_id=owner.id)
            session.add(unit)
            logger.info("Added unit %s", number)


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        seed(session)
        session.commit()


if __name__ == "__main__":
    main()
