"""
services/pnl_engine/source_mapping.py
-------------------------------------
Tabla canal fuente → canal destino de resultados PnL.

Archivo JSON:
    {"signalSources": {"-1002404846297/5": "-1002404846297/178"}}
"""

import json
import logging
import os
from typing import Dict, List, Optional

from utils.helpers import chat_id_variants

logger = logging.getLogger("source_mapping")


class SourceMapping:
    def __init__(self, sources: Optional[Dict[str, str]] = None, fallback_channel: Optional[str] = None):
        self.sources: Dict[str, str] = {str(k): str(v) for k, v in (sources or {}).items()}
        self.fallback_channel = fallback_channel or None

    @classmethod
    def load(cls, path: str, fallback_channel: Optional[str] = None) -> "SourceMapping":
        if not os.path.exists(path):
            logger.warning(f"⚠️ Mapping PnL no encontrado en {path}, sin canales fuente")
            return cls({}, fallback_channel)

        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)

        sources = data.get("signalSources", {})
        logger.info(f"📘 Mapping PnL cargado: {len(sources)} canal(es) fuente")
        return cls(sources, fallback_channel)

    def destination_for(self, chat_id) -> Optional[str]:
        """
        Devuelve el canal destino para un chat fuente; si el chat no está
        mapeado se usa el canal de resultados por defecto (puede ser None).
        """
        for variant in chat_id_variants(chat_id):
            if variant in self.sources:
                return self.sources[variant]
        return self.fallback_channel

    def source_channels(self) -> List[str]:
        return list(self.sources.keys())

    def destinations(self) -> List[str]:
        out: List[str] = []
        for dest in list(self.sources.values()) + [self.fallback_channel]:
            if dest and dest not in out:
                out.append(dest)
        return out
