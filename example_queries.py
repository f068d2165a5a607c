"""
Example questions for Base blockchain data.

EXAMPLES is served by GET /api/examples.
TRAINING_PAIRS are (question, sql) pairs embedded in the translator prompt.
"""

EXAMPLES = [
    {
        "query": "How many transactions happened in the last 24 hours?",
        "description": "Count recent transactions",
    },
    {
        "query": "Show me the top 10 largest USDC transfers today",
        "description": "Find largest token transfers",
    },
    {
        "query": "What's the average gas used per transaction in the last 1000 blocks?",
        "description": "Calculate gas usage statistics",
    },
    {
        "query": "How many unique addresses made transactions this week?",
        "description": "Count active addresses",
    },
    {
        "query": "Show me all transactions from address 0x123... in the last hour",
        "description": "Filter transactions by address and time",
    },
]

USDC_BASE = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"

TRAINING_PAIRS = [
    (
        "How many transactions happened in the last 24 hours?",
        """
        SELECT count(*) AS tx_count
        FROM base.transactions
        WHERE block_timestamp > NOW() - INTERVAL '24 hours'
        LIMIT 1
        """,
    ),
    (
        "Show me the 10 most recent blocks with their gas usage",
        "SELECT number, gas_used, gas_limit, timestamp FROM base.blocks ORDER BY number DESC LIMIT 10",
    ),
    (
        "Show me the top 10 largest USDC transfers today",
        f"""
        SELECT transaction_hash, from_address, to_address, value
        FROM base.transfers
        WHERE token_address = '{USDC_BASE}'
          AND block_timestamp >= date_trunc('day', NOW())
        ORDER BY value DESC
        LIMIT 10
        """,
    ),
    (
        "How many unique addresses made transactions this week?",
        """
        SELECT count(DISTINCT from_address) AS active_addresses
        FROM base.transactions
        WHERE block_timestamp > NOW() - INTERVAL '7 days'
        LIMIT 1
        """,
    ),
]
