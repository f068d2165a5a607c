"""Tables exposed by the CDP SQL API that the translator may reference."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Table:
    name: str
    columns: tuple[str, ...]
    description: str = ""


@dataclass(frozen=True)
class SchemaDescription:
    tables: tuple[Table, ...] = field(default_factory=tuple)

    @property
    def table_names(self) -> list[str]:
        return [t.name for t in self.tables]

    def render(self) -> str:
        """One line per table: ``- name (col, col, ...)``, with a short note if present."""
        lines = []
        for table in self.tables:
            line = f"- {table.name} ({', '.join(table.columns)})"
            if table.description:
                line += f" -- {table.description}"
            lines.append(line)
        return "\n".join(lines)


BASE_SCHEMA = SchemaDescription(
    tables=(
        Table(
            "base.transactions",
            ("hash", "block_number", "from_address", "to_address", "value",
             "gas_used", "gas_price", "block_timestamp"),
            "one row per transaction",
        ),
        Table(
            "base.events",
            ("block_number", "transaction_hash", "contract_address",
             "event_signature", "decoded_params", "block_timestamp"),
            "decoded contract logs",
        ),
        Table(
            "base.blocks",
            ("number", "timestamp", "hash", "transaction_count", "gas_used", "gas_limit"),
        ),
        Table(
            "base.transfers",
            ("block_number", "transaction_hash", "from_address", "to_address",
             "value", "token_address", "block_timestamp"),
            "ERC-20 token transfers",
        ),
    )
)
