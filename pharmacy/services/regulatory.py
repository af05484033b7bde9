from __future__ import annotations

from typing import Mapping

from pharmacy.app.core.config import get_settings
from pharmacy.app.db.models.core_types import RegulatoryClass

# une catégorie qui matche plusieurs classes prend la plus stricte
PRECEDENCE = (RegulatoryClass.controlled, RegulatoryClass.dangerous)


class RegulatoryClassifier:
    """
    Classe une catégorie légale libre par recherche de mots-clés
    (sous-chaîne, insensible à la casse).

    keywords : {mot-clé: classe}, ex. {"ยาอันตราย": "dangerous", "psychotropic": "controlled"}
    """

    def __init__(self, keywords: Mapping[str, str | RegulatoryClass]):
        self._rules: list[tuple[str, RegulatoryClass]] = []
        for keyword, tag in keywords.items():
            if not keyword or not keyword.strip():
                continue
            self._rules.append((keyword.strip().casefold(), RegulatoryClass(tag)))

    @classmethod
    def from_settings(cls) -> "RegulatoryClassifier":
        return cls(get_settings().regulatory_keywords)

    def classify(self, legal_category: str | None) -> RegulatoryClass | None:
        if not legal_category:
            return None
        text = legal_category.casefold()
        matched = {tag for keyword, tag in self._rules if keyword in text}
        for tag in PRECEDENCE:
            if tag in matched:
                return tag
        return None
