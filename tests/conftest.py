import os
import sys
from pathlib import Path

os.environ.setdefault("PAYROLL_PAYMENT_DRY_RUN", "true")
os.environ.setdefault("PAYROLL_ETH_RPC_URL", "http://localhost:8545")

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))
