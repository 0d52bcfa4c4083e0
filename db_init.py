# db_init.py
from config import Config
from invoice_service import build_service


def main():
    # creates the sqlite folder, exports/ and all tables
    build_service(Config)

    print("Database initialized.")
    print(f"DB: {Config.SQLALCHEMY_DATABASE_URI}")
    print(f"Exports dir: {Config.EXPORTS_DIR}")


if __name__ == "__main__":
    main()
