"""Unit tests for the answer and email predicates and category detection"""

import pytest

from qcm.shared.utils.validations import (
    detect_question_category,
    is_short_response,
    is_vague_response,
    is_valid_email,
    needs_elaboration,
)


@pytest.mark.parametrize("email", ["a@b.com", "jean.dupont@exemple.fr", "  x@y.io "])
def test_valid_emails(email):
    assert is_valid_email(email)


@pytest.mark.parametrize("email", ["", "ab.com", "a@b", "a @b.com", "a@b .com"])
def test_invalid_emails(email):
    assert not is_valid_email(email)


def test_short_response_threshold():
    assert is_short_response("oui")
    assert is_short_response("   quatorze car   ")
    assert not is_short_response("quinze caractère")


@pytest.mark.parametrize("answer", ["oui", "Oui", " OK ", "Peut-etre", "je ne sais pas"])
def test_vague_responses_match_whole_answer(answer):
    assert is_vague_response(answer)


def test_vague_response_is_not_a_substring_match():
    assert not is_vague_response("oui, surtout pour la facturation")
    assert not is_vague_response("bientôt")


@pytest.mark.parametrize(
    "answer",
    ["Ça dépend des projets", "C'est compliqué à dire", "Un autre outil", "c'est different"],
)
def test_needs_elaboration(answer):
    assert needs_elaboration(answer)


def test_no_elaboration_for_plain_answer():
    assert not needs_elaboration("J'utilise un tableur tous les jours")


def test_needs_elaboration_with_custom_keywords():
    assert needs_elaboration("voir plus tard", keywords=["plus tard"])
    assert not needs_elaboration("ça dépend", keywords=["plus tard"])


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Quel est votre âge ?", "demographie"),
        ("Quel budget prévoyez-vous ?", "besoins"),
        ("Travaillez-vous en équipe ?", "usage"),
        ("Avez-vous une suggestion pour nous ?", "feedback"),
    ],
)
def test_detect_question_category(text, expected):
    assert detect_question_category(text) == expected


def test_detect_category_first_match_wins():
    text = "Quelle solution utilisez-vous dans votre entreprise ?"
    assert detect_question_category(text) == "demographie"


def test_detect_category_keeps_accents():
    # "age" without the accent is part of "message" and "usage".
    assert detect_question_category("Quel message souhaitez-vous laisser ?") is None


def test_detect_category_with_custom_keywords():
    keywords = {"prix": ["tarif"]}
    assert detect_question_category("Quel tarif ?", keywords) == "prix"
    assert detect_question_category("Quel âge ?", keywords) is None
