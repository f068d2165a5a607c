#!/usr/bin/env python3
"""
Build the translator system prompt from the schema catalog and example queries.

Usage:
    python train.py              # Print the built prompt (for inspection)
    python train.py --stats      # Print token estimate
"""

import argparse

from example_queries import TRAINING_PAIRS
from schema_catalog import BASE_SCHEMA, SchemaDescription

MAX_ROWS = 1000


def load_examples() -> str:
    """Load example query pairs as formatted text."""
    lines = []
    for i, (question, sql) in enumerate(TRAINING_PAIRS, 1):
        lines.append(f"Example {i}:")
        lines.append(f"  Q: {question}")
        lines.append(f"  SQL: {' '.join(sql.split())}")
        lines.append("")
    return "\n".join(lines)


def build_system_prompt(catalog: SchemaDescription = BASE_SCHEMA) -> str:
    """Build the full system prompt with the table catalog and examples."""
    return f"""You are a SQL expert for Base blockchain data. Convert natural language questions into SQL.

RULES:
- Output ONLY the SQL query, no explanation, no markdown fences, no comments.
- Only SELECT queries are allowed. Never INSERT/UPDATE/DELETE/DROP/CREATE/ALTER/TRUNCATE.
- Always include a LIMIT clause and never return more than {MAX_ROWS} rows.
- Use only the tables and columns listed below, with their schema prefix.
- For time-based queries, use the block_timestamp column and NOW() - INTERVAL filters.
- Use proper WHERE clauses for performance, especially on timestamps.
- Use standard SQL compatible with PostgreSQL.
- If the question is ambiguous, make reasonable assumptions and pick the most useful query.

## TABLES

{catalog.render()}

## EXAMPLE QUERIES

{load_examples()}"""


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--stats", action="store_true")
    args = parser.parse_args()

    prompt = build_system_prompt()

    if args.stats:
        # Rough token estimate: ~4 chars per token
        est_tokens = len(prompt) // 4
        print(f"System prompt length: {len(prompt):,} chars (~{est_tokens:,} tokens)")
        print(f"Tables: {len(BASE_SCHEMA.tables)}")
        print(f"Examples: {len(load_examples()):,} chars")
    else:
        print(prompt)


if __name__ == "__main__":
    main()
