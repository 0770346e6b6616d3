"""
EarnLedger — A Tap-to-Earn Reward Ledger
==========================================
Tracks per-account balances and a coin accumulator earned through a
rate-limited tap mechanic, converts coins into spendable currency, and runs
the withdrawal request lifecycle (create → approve / reject with refund).

Every mutation goes through a versioned, conditional write inside a bounded
optimistic-retry loop, so concurrent devices, retried requests and admin
decisions never lose or duplicate money.

Package layout::

    earnledger/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Session cap, conversion rate, money helpers
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # Account, WithdrawalRequest, Setting, AdminLog
    │   └── seed.py        # Default system settings
    ├── engine/
    │   ├── errors.py      # LedgerError taxonomy
    │   ├── snapshot.py    # AccountState value object
    │   ├── session.py     # ACTIVE ⇄ COOLDOWN state machine
    │   ├── conversion.py  # coins → currency normalization
    │   ├── taps.py        # Pure tap-registration pipeline
    │   └── withdrawals.py # PENDING → APPROVED | REJECTED transitions
    ├── services/
    │   ├── account_store.py   # Versioned reads / conditional writes
    │   ├── ledger_service.py  # Transaction engine (retry loop)
    │   ├── settings_service.py # SystemConfig read/write
    │   ├── audit.py           # admin_log writer + reader
    │   └── admin_service.py   # Block toggles + dashboard stats
    ├── client/
    │   ├── batcher.py     # Local tap batching + periodic flush
    │   └── transport.py   # HTTP (httpx) and in-process transports
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT verification, engine/config injection
        └── routes/        # Account, admin and public endpoints
"""

__version__ = "0.1.0"
