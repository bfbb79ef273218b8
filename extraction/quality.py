"""
Quality checks for generated quiz questions.

Flags vague references to "the verses", questions too short to stand on
their own, thin explanations, and bare "Who is ...?" questions with no
narrative context. Findings are advisory; nothing is rejected here.
"""

import json
import re
from pathlib import Path
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from importing.normalizer import parse_question


class QualityIssue(BaseModel):
    question_number: int
    question_text: str
    problem: str
    suggestion: str
    severity: str


class QualityReport(BaseModel):
    label: str
    total_questions: int = 0
    issues: List[QualityIssue] = Field(default_factory=list)

    @property
    def flagged_questions(self) -> int:
        return len({issue.question_number for issue in self.issues})

    @property
    def quality_score(self) -> int:
        """Percentage of questions with no issues."""
        if not self.total_questions:
            return 100
        return round(100 * (self.total_questions - self.flagged_questions) / self.total_questions)


class QuestionQualityChecker:
    """Advisory clarity checks on generated questions."""

    VAGUE_PATTERNS = [
        re.compile(r"\bin the verses?\b", re.IGNORECASE),
        re.compile(r"\bin these verses?\b", re.IGNORECASE),
        re.compile(r"\bmentioned in the verses?\b", re.IGNORECASE),
        re.compile(r"\bdiscussed in the verses?\b", re.IGNORECASE),
        re.compile(r"\bdescribed in the verses?\b", re.IGNORECASE),
        re.compile(r"\bfrom the verses?\b", re.IGNORECASE),
        re.compile(r"\baccording to the verses?\b", re.IGNORECASE),
        re.compile(r"\bas per the verses?\b", re.IGNORECASE),
    ]

    SUGGESTIONS = {
        "in the verses": 'Use specific context like "When [character] [action]" or "In [specific situation]"',
        "mentioned in the verses": "Reference the specific narrative context or character interaction",
        "discussed in the verses": "Describe the actual event or conversation",
        "described in the verses": "Use the specific story element or character description",
    }

    CONTEXT_FREE_PATTERNS = [
        re.compile(r"^Who is [^?]+\?$"),
        re.compile(r"^What is [^?]+\?$"),
        re.compile(r"^Which [^?]+\?$"),
    ]

    CONTEXT_INDICATORS = [
        "when ", "according to ", "in the story of ", "during ", "after ",
        "before ", "while ", "as ", "conversation", "interaction",
        "encounter", "visit", "journey",
    ]

    MIN_QUESTION_LENGTH = 10
    MIN_EXPLANATION_LENGTH = 20

    @staticmethod
    def has_specific_context(question_text: str) -> bool:
        text = question_text.lower()
        return any(indicator in text for indicator in QuestionQualityChecker.CONTEXT_INDICATORS)

    @staticmethod
    def check_question(question: Dict[str, Any], number: int) -> List[QualityIssue]:
        """Run every check on one question."""
        text = question.get("question_text") or ""
        issues = []

        def flag(problem: str, suggestion: str, severity: str) -> None:
            issues.append(QualityIssue(
                question_number=number,
                question_text=text,
                problem=problem,
                suggestion=suggestion,
                severity=severity,
            ))

        for pattern in QuestionQualityChecker.VAGUE_PATTERNS:
            match = pattern.search(text)
            if match:
                phrase = match.group(0)
                flag(
                    f'Contains vague reference: "{phrase}"',
                    QuestionQualityChecker.SUGGESTIONS.get(
                        phrase.lower(), "Use specific narrative context instead of vague references"
                    ),
                    "high",
                )

        if len(text) < QuestionQualityChecker.MIN_QUESTION_LENGTH:
            flag("Question text is too short", "Provide more context and detail in the question", "medium")

        explanation = question.get("basic_explanation") or ""
        if len(explanation) < QuestionQualityChecker.MIN_EXPLANATION_LENGTH:
            flag(
                "Basic explanation is missing or too brief",
                "Provide a comprehensive educational explanation",
                "low",
            )

        for pattern in QuestionQualityChecker.CONTEXT_FREE_PATTERNS:
            if pattern.match(text) and not QuestionQualityChecker.has_specific_context(text):
                flag(
                    "Question lacks specific narrative context",
                    "Include character names, story events, or situational details",
                    "medium",
                )
                break

        return issues

    @staticmethod
    def check_questions(questions: List[Any], label: str) -> QualityReport:
        report = QualityReport(label=label, total_questions=len(questions))
        for number, raw in enumerate(questions, start=1):
            try:
                question = parse_question(raw)
            except ValueError as e:
                report.issues.append(QualityIssue(
                    question_number=number,
                    question_text="",
                    problem=f"Unreadable question: {e}",
                    suggestion="Regenerate this question",
                    severity="high",
                ))
                continue
            report.issues.extend(QuestionQualityChecker.check_question(question, number))
        return report

    @staticmethod
    def check_file(path: Path) -> QualityReport:
        """Check a generated questions file (envelope or bare list)."""
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        questions = data if isinstance(data, list) else data.get("questions", [])
        return QuestionQualityChecker.check_questions(questions, path.stem)
