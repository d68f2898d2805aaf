from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from rapidfuzz import fuzz

from parsers.installments import strip_installment_tokens
from parsers.text import fold


SOURCE_HISTORY = "history"
SOURCE_NAME = "name"
SOURCE_KEYWORD = "keyword"
SOURCE_FUZZY = "fuzzy"

HISTORY_THRESHOLD = 0.6
HISTORY_FREQUENCY_STEP = 0.1
HISTORY_FREQUENCY_CAP = 0.3
NAME_CONFIDENCE = 0.9
KEYWORD_CONFIDENCE = 0.7
FUZZY_FLOOR = 0.4

# Mapa categoria -> palavras-chave (sem acento, minúsculas após fold).
CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Alimentação": (
        "supermercado", "mercado", "padaria", "bakery", "restaurante", "lanchonete",
        "pizzaria", "hamburgueria", "delivery", "ifood", "uber eats", "rappi", "comida",
        "alimento", "alimentacao", "cafe", "starbucks", "cafeteria", "acai", "fast food",
        "mc donalds", "mcdonalds",
    ),
    "Transporte": (
        "uber", "99", "taxi", "combustivel", "posto", "gasolina", "estacionamento",
        "parking", "zona azul", "pedagio", "sem parar", "onibus", "metro",
        "transporte publico", "bilhete unico", "cartao transporte", "transporte",
    ),
    "Moradia": (
        "aluguel", "rent", "condominio", "iptu", "taxa", "energia", "luz", "eletricidade",
        "ceb", "cemig", "copel", "agua", "saneamento", "sanepar", "sabesp", "gas natural",
        "gas", "internet", "wi-fi", "wifi", "net", "vivo", "claro", "oi", "telefone",
        "fixo", "tim",
    ),
    "Saúde": (
        "farmacia", "drugstore", "drogaria", "medico", "doctor", "consulta", "hospital",
        "clinica", "laboratorio", "exame", "plano de saude", "plano saude", "unimed",
        "amil", "sulamerica", "odontologia", "dentista", "dental", "odonto",
        "medicamento", "remedio",
    ),
    "Educação": (
        "escola", "colegio", "university", "universidade", "curso", "faculdade",
        "material escolar", "livro", "didatico", "mensalidade", "matricula", "ensino",
        "educacao", "education",
    ),
    "Lazer": (
        "cinema", "netflix", "spotify", "youtube premium", "show", "concerto", "festival",
        "viagem", "turismo", "hotel", "airbnb", "praia", "parque", "diversao", "jogo",
        "game", "playstation", "xbox", "steam", "bar", "balada", "festas", "evento",
    ),
    "Vestuário": (
        "roupa", "moda", "fashion", "vestuario", "calcado", "sapato", "tenis",
        "acessorio", "joia", "relogio",
    ),
    "Eletrônicos": (
        "notebook", "laptop", "computador", "pc", "smartphone", "celular", "iphone",
        "samsung", "tablet", "ipad", "tv", "televisao", "eletronico", "tech",
        "magazine luiza", "magalu", "casas bahia", "extra", "ponto frio", "amazon",
        "mercado livre",
    ),
    "Utilidades": (
        "conta", "pagamento", "boleto", "servico", "service", "assinatura", "plano",
    ),
}

STOPWORDS = frozenset(
    {
        "com", "das", "dos", "para", "por", "pela", "pelo", "uma", "que", "nas", "nos",
        "the", "and", "ltda", "eireli", "sao", "compra", "pag", "pagto",
    }
)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class Category:
    id: str
    name: str


@dataclass(frozen=True)
class HistoryEntry:
    """A past transaction the user already categorized."""

    description: str
    category_id: str
    category_name: str | None = None


@dataclass(frozen=True)
class CategoryMatch:
    category_id: str | None = None
    category_name: str | None = None
    confidence: float = 0.0
    source: str | None = None

    @property
    def matched(self) -> bool:
        return self.category_id is not None or self.category_name is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "categoryId": self.category_id,
            "categoryName": self.category_name,
            "confidence": round(self.confidence, 4),
            "source": self.source,
        }


NO_MATCH = CategoryMatch()


def normalize_for_matching(text: str) -> str:
    s = fold(strip_installment_tokens(text or "", bare_suffix=True))
    return _NON_ALNUM_RE.sub(" ", s).strip()


def significant_tokens(text: str) -> set[str]:
    return {t for t in text.split() if len(t) >= 3 and t not in STOPWORDS}


def similarity(a: str, b: str) -> float:
    """Score two already-normalized descriptions in [0, 1]."""
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    if a in b or b in a:
        return 0.8

    ta, tb = significant_tokens(a), significant_tokens(b)
    shared = ta & tb
    if not shared:
        return 0.0
    return 0.6 + 0.2 * (len(shared) / len(ta | tb))


def _contains_keyword(text: str, keyword: str) -> bool:
    # Short keywords ("99", "oi", "tv") only count as whole words.
    if len(keyword) <= 3:
        return re.search(rf"(?<![a-z0-9]){re.escape(keyword)}(?![a-z0-9])", text) is not None
    return keyword in text


class CategoryRecognizer:
    def __init__(
        self,
        keywords: dict[str, Sequence[str]] | None = None,
        *,
        history_threshold: float = HISTORY_THRESHOLD,
        fuzzy_floor: float = FUZZY_FLOOR,
    ) -> None:
        self.keywords = CATEGORY_KEYWORDS if keywords is None else keywords
        self.history_threshold = history_threshold
        self.fuzzy_floor = fuzzy_floor

    def recognize(
        self,
        description: str,
        categories: Sequence[Category],
        history: Sequence[HistoryEntry] | None = None,
    ) -> CategoryMatch:
        """Best category guess for a description; an empty match is a normal outcome."""
        text = normalize_for_matching(description)
        if not text:
            return NO_MATCH

        if history:
            match = self._from_history(text, categories, history)
            if match is not None:
                return match

        for match in (
            self._from_names(text, categories),
            self._from_keywords(text, categories),
            self._from_fuzzy(text, categories),
        ):
            if match is not None:
                return match

        return NO_MATCH

    def _from_history(
        self,
        text: str,
        categories: Sequence[Category],
        history: Sequence[HistoryEntry],
    ) -> CategoryMatch | None:
        scores: dict[str, list[float]] = {}
        names: dict[str, str | None] = {}
        for entry in history:
            score = similarity(text, normalize_for_matching(entry.description))
            if score <= 0:
                continue
            scores.setdefault(entry.category_id, []).append(score)
            names.setdefault(entry.category_id, entry.category_name)

        best: CategoryMatch | None = None
        for category_id, values in scores.items():
            bonus = min(HISTORY_FREQUENCY_STEP * (len(values) - 1), HISTORY_FREQUENCY_CAP)
            aggregate = min(max(values) + bonus, 1.0)
            if best is None or aggregate > best.confidence:
                best = CategoryMatch(category_id, names[category_id], aggregate, SOURCE_HISTORY)

        if best is None or best.confidence <= self.history_threshold:
            return None

        known = {c.id: c.name for c in categories}
        if best.category_id in known:
            return CategoryMatch(best.category_id, known[best.category_id], best.confidence, SOURCE_HISTORY)
        return best

    def _from_names(self, text: str, categories: Sequence[Category]) -> CategoryMatch | None:
        for category in categories:
            name = normalize_for_matching(category.name)
            if name and _contains_keyword(text, name):
                return CategoryMatch(category.id, category.name, NAME_CONFIDENCE, SOURCE_NAME)
        return None

    def _from_keywords(self, text: str, categories: Sequence[Category]) -> CategoryMatch | None:
        by_name = {fold(c.name): c for c in categories}
        for taxonomy_name, words in self.keywords.items():
            if not any(_contains_keyword(text, fold(w)) for w in words):
                continue
            category = by_name.get(fold(taxonomy_name))
            if category is not None:
                return CategoryMatch(category.id, category.name, KEYWORD_CONFIDENCE, SOURCE_KEYWORD)
            return CategoryMatch(None, taxonomy_name, KEYWORD_CONFIDENCE, SOURCE_KEYWORD)
        return None

    def _from_fuzzy(self, text: str, categories: Sequence[Category]) -> CategoryMatch | None:
        tokens = significant_tokens(text)
        if not tokens:
            return None

        best: CategoryMatch | None = None
        for category in categories:
            name = normalize_for_matching(category.name)
            if not name:
                continue
            score = max(fuzz.ratio(name, token) for token in tokens) / 100.0
            if score >= self.fuzzy_floor and (best is None or score > best.confidence):
                best = CategoryMatch(category.id, category.name, score, SOURCE_FUZZY)
        return best

    def recognize_many(
        self,
        descriptions: Iterable[str],
        categories: Sequence[Category],
        history: Sequence[HistoryEntry] | None = None,
    ) -> list[CategoryMatch]:
        return [self.recognize(d, categories, history) for d in descriptions]


default_recognizer = CategoryRecognizer()


def recognize_category(
    description: str,
    categories: Sequence[Category],
    history: Sequence[HistoryEntry] | None = None,
) -> CategoryMatch:
    return default_recognizer.recognize(description, categories, history)


def recognize_many(
    descriptions: Iterable[str],
    categories: Sequence[Category],
    history: Sequence[HistoryEntry] | None = None,
) -> list[CategoryMatch]:
    return default_recognizer.recognize_many(descriptions, categories, history)
