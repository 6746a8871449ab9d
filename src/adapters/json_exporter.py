"""Exportación JSON de documentos lógicos.

Por qué JSON:
- Interoperabilidad con planillas y otras herramientas de conciliación.
- Permite guardar la vista agrupada del historial sin depender de la CLI.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

from core.domain.models import LogicalDocument


def documents_payload(documents: Iterable[LogicalDocument]) -> list[dict]:
    payload = []
    for document in documents:
        data = document.to_wire()
        data["itemCount"] = document.item_count
        data["totalTax"] = document.total_tax
        payload.append(data)
    return payload


def export_documents_json(*, documents: Iterable[LogicalDocument], output_path: Path) -> Path:
    """Exporta documentos a JSON UTF-8 con formato estable."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(documents_payload(documents), ensure_ascii=False, indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )
    return output_path
