# db_init.py
import argparse
from pathlib import Path

from config import Config
from models import Base, CompanySettings, ensure_sqlite_dir, make_engine, make_session_factory


def init_db(db_url: str, company_name: str | None = None, logo_url: str | None = None) -> bool:
    """
    Create tables and make sure the single company settings row exists.
    Returns True when the settings row was created by this call.
    """
    ensure_sqlite_dir(db_url)
    engine = make_engine(db_url, echo=Config.SQLALCHEMY_ECHO)
    Base.metadata.create_all(engine)
    SessionLocal = make_session_factory(engine)

    with SessionLocal() as s:
        settings = s.query(CompanySettings).order_by(CompanySettings.id.asc()).first()
        created = settings is None
        if created:
            settings = CompanySettings(company_name="")
            s.add(settings)
        if company_name is not None:
            settings.company_name = company_name.strip()
        if logo_url is not None:
            settings.logo_url = logo_url.strip() or None
        s.commit()
    return created


def main(argv=None):
    parser = argparse.ArgumentParser(description="Create tables and the company settings row.")
    parser.add_argument("--company-name", default=None, help="Company name shown on documents.")
    parser.add_argument("--logo-url", default=None, help="Logo drawn in document headers (empty string clears it).")
    args = parser.parse_args(argv)

    # Ensure exports/ exists for bulk PDF exports
    Path(Config.EXPORTS_DIR).mkdir(parents=True, exist_ok=True)

    created = init_db(Config.SQLALCHEMY_DATABASE_URI, args.company_name, args.logo_url)

    print("✅ Database initialized.")
    print(f"DB: {Config.SQLALCHEMY_DATABASE_URI}")
    print(f"Company settings: {'created' if created else 'kept'}")
    print(f"Exports dir: {Config.EXPORTS_DIR}")


if __name__ == "__main__":
    main()
