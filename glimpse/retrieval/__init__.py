"""
Retrieval - similarity search over indexed memories and answers drawn from them.
"""

from glimpse.retrieval.similarity import cosine_similarity, rank_score, age_hours
from glimpse.retrieval.retriever import Retriever
from glimpse.retrieval.answer import answer_question, build_answer_prompt

__all__ = [
    "cosine_similarity",
    "rank_score",
    "age_hours",
    "Retriever",
    "answer_question",
    "build_answer_prompt",
]
