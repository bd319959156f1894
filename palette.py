"""
palette.py

Colour assignment for asset types and free-form labels such as account
names.  Known asset types get a fixed colour so they read the same in
every chart; anything else is hashed onto a separate general palette.
The hash reproduces the 32-bit arithmetic of the browser front end, so
a label gets the same colour in exported reports and on screen.
"""

from __future__ import annotations

from typing import Dict, List

ASSET_TYPE_COLORS: Dict[str, str] = {
    "国内株式": "#3b82f6",
    "米国株式": "#f97316",
    "中国株式": "#ec4899",
    "アセアン株式": "#ef4444",
    "投資信託": "#22c55e",
    "金・プラチナ": "#eab308",
    "国内債券": "#6366f1",
    "外国債券": "#8b5cf6",
    "現金": "#6b7280",
    "仮想通貨": "#14b8a6",
}

GENERAL_PALETTE: List[str] = [
    "#6b21a8",  # purple-800
    "#1d4ed8",  # blue-700
    "#059669",  # emerald-600
    "#d97706",  # amber-600
    "#db2777",  # pink-600
    "#64748b",  # slate-500
    "#4f46e5",  # indigo-600
    "#c026d3",  # fuchsia-600
]


def _to_int32(n: int) -> int:
    n &= 0xFFFFFFFF
    return n - 0x100000000 if n & 0x80000000 else n


def _utf16_units(text: str) -> List[int]:
    raw = text.encode("utf-16-le", errors="surrogatepass")
    return [int.from_bytes(raw[i:i + 2], "little") for i in range(0, len(raw), 2)]


def string_hash(name: str) -> int:
    """``h = unit + ((h << 5) - h)`` over UTF-16 code units, 32-bit shifts."""
    h = 0
    for unit in _utf16_units(name):
        h = unit + (_to_int32(_to_int32(h) << 5) - h)
    return h


def type_color(asset_type: str) -> str:
    """Return the fixed colour of a known asset type, or ``""``."""
    return ASSET_TYPE_COLORS.get(asset_type, "")


def general_color(name: str) -> str:
    """Return a stable palette colour for any label."""
    # abs of a truncated remainder; Python's % floors, so take abs first
    index = abs(string_hash(name)) % len(GENERAL_PALETTE)
    return GENERAL_PALETTE[index]


def color_for(label: str) -> str:
    return type_color(label) or general_color(label)


__all__ = [
    "ASSET_TYPE_COLORS",
    "GENERAL_PALETTE",
    "string_hash",
    "type_color",
    "general_color",
    "color_for",
]
