"""Question-generation and answer-evaluation prompts.

Each prompt exists in two languages.  The hosted backend speaks Chinese by
default and the self-hosted backend English; both send the same two-message
shape (system instruction, then a user message embedding the material).
"""

from __future__ import annotations

SUPPORTED_LANGUAGES = ("zh", "en")

QUESTION_SYSTEM_PROMPT = {
    "zh": (
        "你是一个专业的教育助手。基于提供的学习材料内容，生成一个有深度的问题来测试学习者对内容的理解。"
        "问题应该：1) 测试核心概念的理解 2) 需要综合思考 3) 避免简单的事实性问题。"
        "请只返回问题本身，不要包含其他解释。"
    ),
    "en": (
        "You are a professional educational assistant. Based on the provided learning "
        "material content, generate a thoughtful question to test the learner's "
        "understanding. The question should: 1) Test understanding of core concepts "
        "2) Require comprehensive thinking 3) Avoid simple factual questions. "
        "Please return only the question itself without other explanations."
    ),
}

QUESTION_USER_PROMPT = {
    "zh": "基于以下学习材料生成一个问题：\n\n{context}",
    "en": "Generate a question based on the following learning material:\n\n{context}",
}

EVALUATION_SYSTEM_PROMPT = {
    "zh": (
        "你是一个专业的教育评估助手。请评估学习者的答案，并提供建设性的反馈。"
        "评估标准：准确性、完整性、深度。"
        "请以JSON格式返回评估结果，包含：score(0-100的整数)、feedback(详细反馈)、suggestions(改进建议数组)。"
    ),
    "en": (
        "You are a professional educational assessment assistant. Please evaluate the "
        "learner's answer and provide constructive feedback. Evaluation criteria: "
        "accuracy, completeness, depth. Please return the evaluation result in JSON "
        "format, including: score (integer 0-100), feedback (detailed feedback), "
        "suggestions (array of improvement suggestions)."
    ),
}

EVALUATION_USER_PROMPT = {
    "zh": (
        "参考材料：\n{context}\n\n问题：{question}\n\n学习者答案：{answer}\n\n"
        "请评估这个答案并返回JSON格式的评估结果。"
    ),
    "en": (
        "Reference material:\n{context}\n\nQuestion: {question}\n\n"
        "Learner's answer: {answer}\n\n"
        "Please evaluate this answer and return a JSON-formatted evaluation result."
    ),
}

# Single suggestion attached to a degraded evaluation.
FALLBACK_SUGGESTION = {
    "zh": "请参考参考材料进一步完善答案",
    "en": "Please refer to the reference material to further improve your answer",
}

CONNECTION_TEST_MESSAGE = "Hello, this is a connection test."
