import argparse
import logging

from sqlalchemy import select, text

from packhouse.db import SessionLocal, engine
from packhouse.logging_config import setup_logging
from packhouse.models import NOTE_COUNTER_NAME, Base, NoteCounter, Principal, PrincipalRole
from packhouse.security.passwords import hash_password

logger = logging.getLogger(__name__)

DEMO_USERS = [
    ('admin', 'adminpass', PrincipalRole.ADMIN),
    ('recepcion', 'recepcionpass', PrincipalRole.RECEPTION),
    ('clasificacion', 'clasificacionpass', PrincipalRole.GRADING),
    ('secretaria', 'secretariapass', PrincipalRole.SECRETARY),
]


def create_schema() -> None:
    with engine.begin() as conn:
        conn.execute(text('CREATE EXTENSION IF NOT EXISTS citext'))
    Base.metadata.create_all(engine)


def seed(*, start_note_number: int = 0) -> None:
    with SessionLocal() as db:
        counter = db.get(NoteCounter, NOTE_COUNTER_NAME)
        if not counter:
            db.add(NoteCounter(name=NOTE_COUNTER_NAME, value=start_note_number))
            logger.info('Note counter created at %d', start_note_number)

        for username, password, role in DEMO_USERS:
            existing = db.execute(select(Principal).where(Principal.username == username)).scalar_one_or_none()
            if existing:
                continue
            db.add(
                Principal(
                    username=username,
                    password_hash=hash_password(password),
                    role=role,
                    active=True,
                )
            )
            logger.info('Created %s user %r', role.value, username)

        db.commit()


def main() -> None:
    parser = argparse.ArgumentParser(description='Create the schema and demo users.')
    parser.add_argument(
        '--start-note-number',
        type=int,
        default=0,
        help='Counter value before the first sale; the first note gets this plus one.',
    )
    parser.add_argument('--skip-schema', action='store_true', help='Do not run CREATE TABLE statements.')
    args = parser.parse_args()

    setup_logging()
    if not args.skip_schema:
        create_schema()
    seed(start_note_number=args.start_note_number)
    print('Seed data inserted/verified.')


if __name__ == '__main__':
    main()
