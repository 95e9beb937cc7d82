from __future__ import annotations

import argparse
import asyncio
import getpass

from ecotrack.application.auth.tokens import TokenService, hash_password
from ecotrack.core.settings import get_settings
from ecotrack.domain.users import UserRole
from ecotrack.infrastructure.db import create_engine, create_schema, create_session_factory
from ecotrack.infrastructure.models import UserModel
from ecotrack.infrastructure.repositories.users import SqlAlchemyUserRepository


async def _main(email: str, name: str, password: str) -> None:
    settings = get_settings()
    engine = create_engine(settings.database_url)
    try:
        await create_schema(engine)
        async with create_session_factory(engine)() as session:
            repo = SqlAlchemyUserRepository(session)
            if await repo.get_by_email(email) is not None:
                raise SystemExit(f"A user with email {email} already exists")
            model = UserModel(
                tenant_id=None,
                email=email,
                name=name,
                role=UserRole.SUPERADMIN.value,
                password_hash=hash_password(password, settings.password_bcrypt_rounds),
            )
            await repo.add(model)
            await session.commit()
            user = SqlAlchemyUserRepository._to_domain(model)
    finally:
        await engine.dispose()

    token = TokenService(settings).issue_token(user)
    print("Superadmin created:", user.id)
    print("Bearer token (valid for", settings.jwt_ttl_s, "seconds):", token)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a platform superadmin")
    parser.add_argument("email")
    parser.add_argument("--name", default="Platform Admin")
    args = parser.parse_args()

    password = getpass.getpass("Password: ")
    if len(password) < 8:
        raise SystemExit("Password must be at least 8 characters")
    asyncio.run(_main(args.email.strip().lower(), args.name, password))
