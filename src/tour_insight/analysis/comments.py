"""Keyword categorisation of customer comments."""

from __future__ import annotations

from typing import Iterable

from tour_insight.analysis.punctuality import Outcome

DEFAULT_CATEGORY = "Autre"

# Evaluated in order, first category with a matching keyword wins.
# Multi-word phrases sit ahead of the single words they contain.
COMMENT_CATEGORIES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Non pertinent", ("non pertinent", "rien à voir")),
    ("Manquant multiple", ("plusieurs manquants", "plusieurs articles")),
    ("Erreur de livraison", ("pas ma commande", "autre client")),
    ("Non livré", ("non livré", "pas livré", "jamais livré")),
    ("Attitude livreur", (
        "livreur", "aimable", "agressif", "impoli", "comportement",
        "attitude", "courtois", "masque",
    )),
    ("Casse produit", ("cassé", "abîmé", "endommagé", "éclaté", "brisé", "ecrasé")),
    ("Manquant produit", ("manquant", "manque", "oubli", "pas reçu", "jamais eu", "absent")),
    ("Manquant bac", ("sac", "entier")),
    ("Erreur de préparation", ("erreur", "mauvais produit", "inversion")),
    ("Livraison en avance", ("avance", "trop tôt", "avant l'heure")),
    ("Livraison en retard", (
        "retard", "trop tard", "attendu", "pas à l'heure", "attente",
    )),
    ("Rupture chaine de froid", (
        "chaîne du froid", "froid", "chaud", "congelé", "décongelé", "frais",
    )),
    ("Process", (
        "process", "application", "site", "commande", "sms",
        "notification", "créneau", "appel",
    )),
)


def categorize_comment(comment: str | None) -> str:
    if not comment or not comment.strip():
        return DEFAULT_CATEGORY
    text = comment.lower()
    for category, keywords in COMMENT_CATEGORIES:
        if any(k in text for k in keywords):
            return category
    return DEFAULT_CATEGORY


def comment_categories(outcomes: Iterable[Outcome]) -> dict[str, int]:
    """Category counts over the stops that carry a comment, largest first."""
    counts: dict[str, int] = {}
    for o in outcomes:
        comment = o.record.task.comment
        if not comment or not comment.strip():
            continue
        category = categorize_comment(comment)
        counts[category] = counts.get(category, 0) + 1
    return dict(sorted(counts.items(), key=lambda kv: (-kv[1], kv[0])))
