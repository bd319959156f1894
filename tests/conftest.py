import os

# Keep test runs from creating logs/app.log in the working tree.
os.environ.setdefault("LOG_TO_FILE", "false")

import pytest

from portfolio_logging import clear_audit_log
from portfolio_models import Holding

HEADER = '"種別","銘柄コード・ティッカー","銘柄","口座","保有数量","時価評価額[円]","評価損益[円]"'

ROWS = [
    '"国内株式","7203","トヨタ自動車","特定","100","250,000","50,000"',
    '"米国株式","AAPL","アップル","NISA成長投資枠","10","300,000","-12,000"',
    '"投資信託","","eMAXIS Slim 全世界株式(オール・カントリー)","つみたてNISA","1,000","1,500,000","300,000"',
]


def build_statement(header=HEADER, rows=ROWS, *, anchor_line="■保有商品詳細 (すべて)", newline="\r\n"):
    """Text of a holdings export: a summary block, the holdings section and a trailing section."""
    lines = [
        "■資産合計欄",
        '"資産合計[円]","2,050,000"',
        "",
        anchor_line,
        header,
        *rows,
        "",
        "■参考為替レート",
        '"USD","150.25"',
    ]
    return newline.join(lines) + newline


@pytest.fixture
def statement_text():
    return build_statement


@pytest.fixture
def write_statement(tmp_path):
    def _write(name="statement.csv", text=None, encoding="utf-8"):
        path = tmp_path / name
        path.write_bytes((text if text is not None else build_statement()).encode(encoding))
        return str(path)

    return _write


@pytest.fixture
def make_holding():
    counter = {"n": 0}

    def _make(name="A", account="X", value=100, gain_loss=10, type="国内株式", id=None):
        counter["n"] += 1
        return Holding(
            id=id or f"h{counter['n']}",
            type=type,
            name=name,
            account=account,
            value=value,
            gain_loss=gain_loss,
        )

    return _make


@pytest.fixture(autouse=True)
def _reset_audit_log():
    clear_audit_log()
    yield
    clear_audit_log()
