import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def make_container(tmp_path: Path, name: str = "billing.db"):
    from gstbill.application.container import build_container

    return build_container(tmp_path / name)


def stock_of(container, product_id: int) -> int:
    return container.inventory.get_product(product_id).stock_quantity
