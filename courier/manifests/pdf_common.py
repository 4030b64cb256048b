# courier/manifests/pdf_common.py
from __future__ import annotations

import re
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional, Tuple, Union

from flask import current_app
from reportlab.lib import colors

# ReportLab built-ins; no font files to ship.
FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"


# =============================================================================
# Storage paths
# =============================================================================

def manifests_root() -> Path:
    root = Path(current_app.instance_path) / "manifests"
    root.mkdir(parents=True, exist_ok=True)
    return root


# =============================================================================
# Common formatting
# =============================================================================

def fmt_date_ddmmyyyy(d: Optional[Union[date, datetime]]) -> str:
    if d is None:
        return ""
    return d.strftime("%d-%m-%Y")


def fmt_money(v: Optional[float]) -> str:
    if v is None:
        return ""
    try:
        return f"{float(v):.2f}"
    except (TypeError, ValueError):
        return str(v)


def clean_filename_keep_spaces(name: str, max_len: int = 160) -> str:
    """
    Keep spaces, but strip characters that can break headers/paths.
    Also collapse repeated whitespace.
    """
    s = (name or "").strip()
    s = re.sub(r'[\\/:*?"<>|]+', " ", s)
    s = re.sub(r"\s+", " ", s).strip()
    if len(s) > max_len:
        s = s[:max_len].rstrip()
    return s


def depot_label(depot) -> str:
    if depot is None:
        return "-"
    return f"{depot.name} ({depot.code})"


# =============================================================================
# Table styles
# =============================================================================

def table_base_style(font_size: float = 9) -> List[Tuple]:
    # 1.15 line spacing
    return [
        ("FONTNAME", (0, 0), (-1, -1), FONT),
        ("FONTSIZE", (0, 0), (-1, -1), font_size),
        ("LEADING", (0, 0), (-1, -1), round(font_size * 1.15, 2)),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("LEFTPADDING", (0, 0), (-1, -1), 4),
        ("RIGHTPADDING", (0, 0), (-1, -1), 4),
        ("TOPPADDING", (0, 0), (-1, -1), 3),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
    ]


def grid_table_style(font_size: float = 9) -> List[Tuple]:
    cmds = table_base_style(font_size)
    cmds += [
        ("GRID", (0, 0), (-1, -1), 0.6, colors.black),
        ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
        ("FONTNAME", (0, 0), (-1, 0), FONT_BOLD),
        ("ALIGN", (0, 0), (-1, 0), "CENTER"),
        ("VALIGN", (0, 0), (-1, 0), "MIDDLE"),
        ("ALIGN", (0, 1), (0, -1), "CENTER"),
        ("ALIGN", (-1, 1), (-1, -1), "RIGHT"),
    ]
    return cmds
