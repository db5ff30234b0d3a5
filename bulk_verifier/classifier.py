"""Routing of service verdicts into the valid and invalid output stores."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Set

from .models import Lead, VerificationVerdict, normalise_email
from .stores import OutputStore

LOGGER = logging.getLogger(__name__)


def is_valid_verdict(verdict: VerificationVerdict) -> bool:
    """Return ``True`` unless the verdict carries an explicit negative signal.

    Missing fields never disqualify an address.
    """

    return not (
        verdict.is_valid_syntax is False
        or verdict.is_deliverable is False
        or verdict.is_disposable is True
        or verdict.is_spamtrap is True
        or verdict.is_disabled is True
        or verdict.is_safe_to_send is False
    )


@dataclass
class ClassificationCounts:
    valid: int = 0
    invalid: int = 0
    skipped: int = 0


def build_lead_map(leads: Iterable[Lead]) -> Dict[str, Lead]:
    """Index leads by normalised email, keeping the first lead for each address."""

    lead_map: Dict[str, Lead] = {}
    for lead in leads:
        lead_map.setdefault(lead.key, lead)
    return lead_map


class ResultClassifier:
    """Appends each verified lead to exactly one of the two stores.

    ``classified`` is the set of normalised addresses already present in
    either store; it is updated as leads are appended so an address is
    never written twice.
    """

    def __init__(self, valid_store: OutputStore, invalid_store: OutputStore, classified: Set[str]) -> None:
        self.valid_store = valid_store
        self.invalid_store = invalid_store
        self.classified = classified

    def classify(
        self,
        verdicts: Iterable[VerificationVerdict],
        lead_map: Mapping[str, Lead],
    ) -> ClassificationCounts:
        counts = ClassificationCounts()
        for verdict in verdicts:
            key = normalise_email(verdict.email)
            lead = lead_map.get(key)
            if lead is None:
                LOGGER.debug("No lead matches verified address %s, skipping", verdict.email)
                counts.skipped += 1
                continue
            if key in self.classified:
                counts.skipped += 1
                continue

            score = verdict.score if verdict.score is not None else "N/A"
            if is_valid_verdict(verdict):
                self.valid_store.append(lead)
                counts.valid += 1
                LOGGER.debug("valid   %s: %s (score: %s)", verdict.email, verdict.status, score)
            else:
                self.invalid_store.append(lead)
                counts.invalid += 1
                LOGGER.debug("invalid %s: %s (score: %s)", verdict.email, verdict.status, score)
            self.classified.add(key)
        return counts


__all__ = ["ClassificationCounts", "ResultClassifier", "build_lead_map", "is_valid_verdict"]
