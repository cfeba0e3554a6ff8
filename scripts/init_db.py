import asyncio
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from sqlalchemy import text

from pdf_rag_server.db import Base, async_engine, dispose_engine


async def main():
    print("Connecting to database...")
    async with async_engine.begin() as conn:
        # pgvector must exist before the embedding table is created
        print("Enabling pgvector extension...")
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))

        print("Creating tables...")
        await conn.run_sync(Base.metadata.create_all)

    tables = ", ".join(sorted(Base.metadata.tables))
    print(f"Database ready ({tables}).")
    await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
