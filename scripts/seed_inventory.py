"""
Inventory seeding script for Expiry Refill.

Generates deterministic pseudo-random inventory documents (`sku-N` -> price),
writes them as JSON lines, and loads them into the record store table with
Postgres COPY. Table and document field names follow the STORE_TABLE,
STORE_KEY_FIELD and STORE_VALUE_FIELD settings, so seeded documents are the ones
the refill worker looks up.
"""

from __future__ import annotations

import json
import random
import sys
import tempfile
import time
import uuid
from pathlib import Path
from typing import Any, Dict, Iterator, List

import psycopg
import typer
from psycopg import sql

from expiry_refill.config import get_settings
from expiry_refill.infrastructure.db_factory import build_dsn

app = typer.Typer(help="Generate inventory documents and load them into Postgres (JSONL + COPY).")


def _build_dsn(dsn_override: str | None) -> str:
    if dsn_override:
        return dsn_override
    return build_dsn()


def _generate_documents(
    rows: int,
    seed: int,
    key_field: str = "item",
    value_field: str = "price",
) -> Iterator[Dict[str, Any]]:
    rng = random.Random(seed)
    categories = ["books", "games", "tools", "garden"]
    for i in range(1, rows + 1):
        yield {
            "id": str(uuid.UUID(int=rng.getrandbits(128), version=4)),
            key_field: f"sku-{i}",
            value_field: f"{rng.uniform(1, 500):.2f}",
            "category": rng.choice(categories),
        }


def _write_jsonl(
    jsonl_path: Path,
    rows: int,
    seed: int,
    key_field: str = "item",
    value_field: str = "price",
) -> int:
    written = 0
    with jsonl_path.open("w", encoding="utf-8") as f:
        for doc in _generate_documents(rows, seed, key_field=key_field, value_field=value_field):
            f.write(json.dumps(doc) + "\n")
            written += 1
    return written


def _schema_statements(table: str, key_field: str) -> List[sql.Composed]:
    """DDL for `table` plus the expression index the worker's lookup uses."""
    table_ident = sql.Identifier(*table.split("."))
    index_name = f"{table.split('.')[-1]}_{key_field}_idx"
    return [
        sql.SQL("CREATE TABLE IF NOT EXISTS {} (id TEXT PRIMARY KEY, doc JSONB NOT NULL)").format(
            table_ident
        ),
        sql.SQL("CREATE INDEX IF NOT EXISTS {} ON {} ((doc->>{}))").format(
            sql.Identifier(index_name), table_ident, sql.Literal(key_field)
        ),
    ]


def _copy_into_db(
    dsn: str,
    jsonl_path: Path,
    table: str,
    key_field: str = "item",
    truncate: bool = False,
) -> int:
    table_ident = sql.Identifier(*table.split("."))
    loaded = 0
    with psycopg.connect(dsn) as conn:
        with conn.cursor() as cur:
            for statement in _schema_statements(table, key_field):
                cur.execute(statement)
            if truncate:
                cur.execute(sql.SQL("TRUNCATE TABLE {}").format(table_ident))
            with cur.copy(sql.SQL("COPY {} (id, doc) FROM STDIN").format(table_ident)) as copy:
                with jsonl_path.open("r", encoding="utf-8") as f:
                    for line in f:
                        if not line.strip():
                            continue
                        doc = json.loads(line)
                        copy.write_row((doc["id"], json.dumps(doc)))
                        loaded += 1
        conn.commit()
    return loaded


@app.command()
def main(
    rows: int = typer.Option(
        1_000,
        "--rows",
        "-r",
        help="Number of inventory documents to generate.",
    ),
    seed: int = typer.Option(
        42,
        "--seed",
        help="Deterministic RNG seed.",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Optional JSONL output path (if omitted, a temp file will be used).",
    ),
    dsn: str | None = typer.Option(
        None,
        "--dsn",
        help="Optional DSN override for Postgres.",
    ),
    truncate: bool = typer.Option(
        False,
        "--truncate",
        help="Empty the inventory table before loading.",
    ),
    no_load: bool = typer.Option(
        False,
        "--no-load",
        help="Only generate JSONL; skip loading into Postgres.",
    ),
) -> None:
    """
    Generate inventory documents and optionally load them into Postgres using COPY.
    """
    start = time.perf_counter()
    if output:
        jsonl_path = output
        jsonl_path.parent.mkdir(parents=True, exist_ok=True)
    else:
        tmpdir = Path(tempfile.mkdtemp(prefix="inventory_jsonl_"))
        jsonl_path = tmpdir / "inventory.jsonl"

    typer.echo(f"Generating {rows:,} documents -> {jsonl_path} (seed={seed})")
    settings = get_settings()
    _write_jsonl(
        jsonl_path,
        rows=rows,
        seed=seed,
        key_field=settings.store_key_field,
        value_field=settings.store_value_field,
    )
    typer.echo(f"Generation completed in {time.perf_counter() - start:.2f}s")

    if no_load:
        typer.echo("Skipping load (no-load flag set).")
        return

    table = settings.store_table
    typer.echo(f"Loading documents into {table} via COPY...")
    loaded = _copy_into_db(
        _build_dsn(dsn),
        jsonl_path,
        table=table,
        key_field=settings.store_key_field,
        truncate=truncate,
    )
    typer.echo(f"Loaded {loaded:,} documents. Total time {time.perf_counter() - start:.2f}s.")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
