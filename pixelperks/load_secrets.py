import os
import pathlib
from dotenv import load_dotenv

load_dotenv()

user = os.getenv("DB_USER")
password = os.getenv("DB_PASSWORD")
host = os.getenv("DB_HOST")
port = os.getenv("DB_PORT", "5432")
db_name = os.getenv("DB_NAME")

redis_host = os.getenv("REDIS_HOST", "localhost")
redis_port = int(os.getenv("REDIS_PORT", "6379"))

storage_max_retries = int(os.getenv("STORAGE_MAX_RETRIES", "5"))
timer_sweep_seconds = int(os.getenv("TIMER_SWEEP_SECONDS", "60"))

sqlite_path = pathlib.Path(__file__).parents[1] / "pixelperks.sqlite3"

database_url = os.getenv("DATABASE_URL")
if database_url is None and host:
    database_url = f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db_name}"
elif database_url is None:
    database_url = f"sqlite+aiosqlite:///{sqlite_path}"

if __name__ == "__main__":
    print(user, host, port, db_name, redis_host, redis_port, database_url)
