from __future__ import annotations

import logging
from typing import Sequence

from parsers.base import DetectionStep, FormatParser, ParseResult
from parsers.installments import DEFAULT_INSTALLMENT_POLICY, InstallmentPolicy
from parsers.invoices import generic, inter, nubank, picpay, sicredi, willbank


logger = logging.getLogger("fatura-import")


# Most distinctive layouts first; order decides ties between detection predicates.
DEFAULT_PARSERS: tuple[FormatParser, ...] = (
    nubank.PARSER,
    willbank.PARSER,
    inter.PARSER,
    sicredi.PARSER,
    picpay.PARSER,
)

FALLBACK_PARSER: FormatParser = generic.PARSER


class ParserRegistry:
    """Ordered, immutable set of statement parsers plus the generic fallback."""

    def __init__(
        self,
        parsers: Sequence[FormatParser] = DEFAULT_PARSERS,
        *,
        fallback: FormatParser | None = FALLBACK_PARSER,
        policy: InstallmentPolicy = DEFAULT_INSTALLMENT_POLICY,
    ) -> None:
        ids = [p.bank_id for p in parsers]
        if fallback is not None:
            ids.append(fallback.bank_id)
        if len(set(ids)) != len(ids):
            raise ValueError(f"duplicate parser ids: {ids}")

        self._parsers = tuple(parsers)
        self._fallback = fallback
        self._policy = policy

    @property
    def parsers(self) -> tuple[FormatParser, ...]:
        return self._parsers

    @property
    def fallback(self) -> FormatParser | None:
        return self._fallback

    @property
    def policy(self) -> InstallmentPolicy:
        return self._policy

    def bank_ids(self) -> list[str]:
        ids = [p.bank_id for p in self._parsers]
        if self._fallback is not None:
            ids.append(self._fallback.bank_id)
        return ids

    def get(self, bank_id: str) -> FormatParser | None:
        for parser in self._parsers:
            if parser.bank_id == bank_id:
                return parser
        if self._fallback is not None and self._fallback.bank_id == bank_id:
            return self._fallback
        return None

    def detect_with_trace(self, text: str) -> tuple[FormatParser | None, list[DetectionStep]]:
        trace: list[DetectionStep] = []
        for parser in self._parsers:
            try:
                matched = parser.can_parse(text)
            except Exception as exc:
                logger.warning("[registry] detect failed bank=%s error=%r", parser.bank_id, exc)
                trace.append(DetectionStep(parser.bank_id, False, error=repr(exc)))
                continue

            trace.append(DetectionStep(parser.bank_id, matched))
            if matched:
                return parser, trace

        return None, trace

    def detect(self, text: str) -> FormatParser | None:
        """First parser, in priority order, whose predicate accepts the text."""
        parser, _trace = self.detect_with_trace(text)
        return parser

    def parse(self, text: str) -> ParseResult:
        parser, trace = self.detect_with_trace(text)
        fallback = False
        if parser is None:
            if self._fallback is None:
                logger.info("[registry] no parser matched and no fallback configured")
                return ParseResult(None, None, detection=trace)
            parser = self._fallback
            fallback = True

        logger.info("[registry] selected bank=%s fallback=%s", parser.bank_id, fallback)
        result = self._run(parser, text)
        result.detection = trace
        result.fallback = fallback
        return result

    def parse_with(self, bank_id: str, text: str) -> ParseResult:
        parser = self.get(bank_id)
        if parser is None:
            raise KeyError(bank_id)
        return self._run(parser, text)

    def _run(self, parser: FormatParser, text: str) -> ParseResult:
        try:
            result = parser.parse(text, self._policy)
        except Exception:
            logger.exception("[registry] parser failed bank=%s", parser.bank_id)
            return ParseResult(
                parser.bank_id,
                parser.bank_name,
                warnings=[f"parser {parser.bank_id} failed; no transactions extracted"],
            )

        logger.info(
            "[registry] parsed bank=%s transactions=%d skipped=%d warnings=%d",
            parser.bank_id,
            len(result.transactions),
            len(result.skipped),
            len(result.warnings),
        )
        return result


default_registry = ParserRegistry()
