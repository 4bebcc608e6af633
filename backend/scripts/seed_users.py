#!/usr/bin/env python
"""Idempotent seed script for issue desk users.

Usage:
    python backend/scripts/seed_users.py                  # ensure the root user
    python backend/scripts/seed_users.py --demo           # plus one demo user per role
    python backend/scripts/seed_users.py --dry-run        # run logic then rollback (no DB changes)
    python backend/scripts/seed_users.py --demo --show-users
"""
from __future__ import annotations
import os, sys, argparse, textwrap
from sqlalchemy import select

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from issuedesk import create_app, get_db  # type: ignore
from issuedesk.constants.roles import Role, parse_role
from issuedesk.models.authz import Base, User
import issuedesk.models.issue  # noqa: F401
import issuedesk.models.audit  # noqa: F401

DEMO_PASSWORD_ENV = 'SEED_DEMO_PASSWORD'

# (email, name, role, district_id, branch)
DEMO_USERS = [
    ('clerk@district-7.example', 'District 7 Clerk', Role.SUBMITTER, 'district-7', None),
    ('officer@district-7.example', 'District 7 Verifying Officer', Role.DISTRICT_APPROVER, 'district-7', None),
    ('clerk@head-office.example', 'Head Office Clerk', Role.SUBMITTER, 'head-office', 'it'),
    ('central@head-office.example', 'Central Approver', Role.CENTRAL_APPROVER, 'head-office', 'it'),
    ('tech@head-office.example', 'Technician', Role.TECHNICIAN, 'head-office', 'it'),
    ('super@head-office.example', 'Super Approver', Role.SUPER_APPROVER, 'head-office', None),
]


def ensure_user(session, email: str, name: str, role: Role, password: str, district_id=None, branch=None):
    """Create the user if missing; returns (user, created)."""
    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user:
        return user, False
    user = User(name=name, email=email, password_hash='', role=role.value, district_id=district_id, branch=branch)
    user.set_password(password)
    session.add(user)
    session.flush()
    return user, True


def ensure_root_user(session):
    email = os.getenv('SEED_ROOT_EMAIL', 'root@example.com')
    user, created = ensure_user(session, email, 'Root', Role.ROOT, os.getenv('SEED_ROOT_PASSWORD', 'ChangeMe123!'))
    if created:
        print(f"[INFO] Created root user {email} with temporary password.")
    return created


def ensure_demo_users(session):
    password = os.getenv(DEMO_PASSWORD_ENV, 'demo')
    created = 0
    for email, name, role, district_id, branch in DEMO_USERS:
        _, was_created = ensure_user(session, email, name, role, password, district_id, branch)
        created += int(was_created)
    return created


def find_unknown_roles(session):
    """Users whose stored role no longer parses; they would be refused on every request."""
    problems = []
    for user in session.execute(select(User)).scalars().all():
        try:
            parse_role(user.role)
        except ValueError:
            problems.append((user.email, user.role))
    return problems


def print_users(session):
    rows = session.execute(select(User).order_by(User.id)).scalars().all()
    if not rows:
        print("[INFO] No users present.")
        return
    email_w = max(len(u.email) for u in rows)
    print(f"{'Email'.ljust(email_w)} | Role              | District     | Branch")
    print('-' * (email_w + 50))
    for u in rows:
        print(f"{u.email.ljust(email_w)} | {u.role.ljust(17)} | {(u.district_id or '-').ljust(12)} | {u.branch or '-'}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Seed issue desk users",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  root only: seed_users.py\n  demo users: seed_users.py --demo\n  dry run: seed_users.py --demo --dry-run\n"""),
    )
    p.add_argument('--demo', action='store_true', help='Also create one demo user per role')
    p.add_argument('--show-users', action='store_true', help='Print users after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    app = create_app()
    with app.app_context():
        session = get_db()
        # Bootstrap schema when migrations have not run yet; prefer `alembic upgrade head`.
        Base.metadata.create_all(session.get_bind(), checkfirst=True)
        created_root = ensure_root_user(session)
        created_demo = ensure_demo_users(session) if args.demo else 0
        for email, role in find_unknown_roles(session):
            print(f"[WARN] User {email} has unrecognised role {role!r}")
        if args.show_users:
            print_users(session)
        if args.dry_run:
            session.rollback()
            print(f"[DRY-RUN] (rolled back) Root would create: {int(created_root)}, demo users would create: {created_demo}")
        else:
            session.commit()
            print(f"[DONE] Root created: {int(created_root)}, demo users created: {created_demo}")
    return 0


if __name__ == '__main__':  # pragma: no cover
    sys.exit(main())
