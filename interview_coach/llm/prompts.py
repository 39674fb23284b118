import json

QUESTION_COUNT = 5

READING_LEVEL = """IMPORTANT: Adapt the reading level of the questions to the target candidate profile for a {role}.
- If the role is entry-level (e.g., Cashier): use a 6th-7th grade reading level. Sentences must be short (under 15 words). Use standard workplace English and avoid corporate jargon.
- If the role is highly technical or executive: use appropriate professional terminology but keep phrasing clear.
- When in doubt: prioritize simplicity."""


def build_questions_prompt(role: str, job_description: str | None = None, count: int = QUESTION_COUNT) -> str:
    if job_description:
        task = f"""Generate {count} interview questions for a {role} position based on this job description:
---
{job_description.strip()}
---
Questions should test skills mentioned in the job description."""
    else:
        task = f"""Generate {count} common interview questions for a {role} position.
The questions should be diverse (behavioral, technical, situational)."""

    return f"""You are an expert interview question generator.

{READING_LEVEL.format(role=role)}

{task}

Output format: JSON array of objects. Each object must have these fields:
{{"id": "1", "text": "Tell me about a time you ...", "type": "behavioral|technical|situational|general", "difficulty": "easy|medium|hard"}}

Generate exactly {count} questions. Output ONLY the JSON array:"""


def build_tips_prompt(question_text: str, role: str) -> str:
    return f"""You are a supportive interview coach helping a candidate for a {role} position.

Interview question: "{question_text}"

Give 3 short, practical tips for answering this question well, and name the answer
framework that fits best (for example "STAR" for behavioral questions).

Output ONLY a JSON object:
{{"points": ["tip 1", "tip 2", "tip 3"], "framework": "STAR"}}"""


def build_analysis_prompt(
    question_text: str,
    answer_text: str,
    from_audio: bool = False,
    rubric: dict | None = None,
    intake_profile: dict | None = None,
) -> str:
    source = "a transcript of the user's spoken answer" if from_audio else "the user's typed answer"
    delivery = ""
    if from_audio:
        delivery = """
5. Judge the delivery visible in the transcript (filler words, rambling, pace cues).
   - deliveryStatus: 1-2 words (e.g., "Confident", "Rambling", "Hesitant").
   - deliveryTips: 2 specific, kind tips on delivery."""

    context = ""
    if rubric:
        context += f"\nScoring rubric for this interview:\n{json.dumps(rubric, ensure_ascii=False, indent=2)}\n"
    if intake_profile:
        context += f"\nCandidate background:\n{json.dumps(intake_profile, ensure_ascii=False, indent=2)}\n"

    return f"""You are a supportive and encouraging interview coach.
Analyze {source} to the interview question: "{question_text}".
{context}
Answer:
\"\"\"{answer_text}\"\"\"

1. The transcript is the answer itself; return it unchanged.
2. Provide 3 balanced feedback points (strengths and areas for improvement). Be constructive but kind.
3. Identify 3-5 key professional terms used (or that should have been used).
4. Give a rating: "Strong", "Good", or "Developing", and a numeric answerScore from 0 to 100.{delivery}

Output ONLY a JSON object with the fields:
{{"transcript": "...", "feedback": ["..."], "keyTerms": ["..."], "rating": "Good", "answerScore": 75, "deliveryStatus": null, "deliveryTips": []}}"""
