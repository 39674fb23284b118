"""Console driver: python -m interview_coach"""
import asyncio
import logging
import sys
from pathlib import Path

from interview_coach.coach import InterviewCoach
from interview_coach.config import settings
from interview_coach.db import database
from interview_coach.exceptions import InterviewCoachError

logger = logging.getLogger(__name__)

HELP = """Commands:
  start <role>      start a new session
  show              show the current question
  next / prev       navigate questions
  tips              show tips for the current question
  rec               start/stop recording an answer
  text <answer>     type an answer
  confirm / retry   submit or discard the held answer
  finish            complete and archive the session
  reset             discard the session
  dashboard         coaching signals
  history           archived sessions
  export <id> [json] save one session to a file
  export all        save every session as JSON
  delete <id>       delete one archived session
  clear             delete all archived sessions
  quit"""


def setup_logging():
    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def show_question(coach: InterviewCoach):
    session = coach.session
    question = session.current_question
    if question is None:
        print("No active session. Use: start <role>")
        return
    print(f"[{session.current_index + 1}/{len(session.questions)}] {question.text}")
    record = session.answers.get(question.id)
    if record is None:
        return
    if record.analysis is None:
        print("  (answer saved, feedback pending)")
    else:
        print(f"  Rating: {record.analysis.rating}")
        for point in record.analysis.feedback:
            print(f"  - {point}")


async def reveal(attempt):
    analysis = await attempt.wait_revealed()
    if analysis is None:
        print("Feedback is unavailable for this answer, your transcript was kept.")
        return
    print(f"Rating: {analysis.rating}" + (f" ({analysis.score}/100)" if analysis.score is not None else ""))
    for point in analysis.feedback:
        print(f"- {point}")


async def handle(coach: InterviewCoach, command: str, arg: str) -> bool:
    if command == "start":
        await coach.start(arg)
        show_question(coach)
    elif command == "show":
        show_question(coach)
    elif command in ("next", "prev"):
        moved = coach.next_question() if command == "next" else coach.prev_question()
        if not moved:
            print("No more questions in that direction.")
        show_question(coach)
    elif command == "tips":
        tips = await coach.load_tips()
        if tips is None:
            print("Tips are unavailable right now.")
        else:
            for point in tips.points:
                print(f"- {point}")
    elif command == "rec":
        clip = await coach.toggle_recording()
        if clip is None:
            print("Recording... type 'rec' again to stop.")
        else:
            print(f"Recorded {clip.size} bytes. Type 'confirm' to submit or 'retry' to discard.")
    elif command == "text":
        coach.submit_text(arg)
        print("Answer held. Type 'confirm' to submit or 'retry' to discard.")
    elif command == "confirm":
        attempt = await coach.confirm()
        print(attempt.timer.current_step)
        await reveal(attempt)
    elif command == "retry":
        coach.retry()
        print("Answer discarded.")
    elif command == "finish":
        entry = await coach.finish()
        if entry is None:
            print("Answer at least one question before finishing.")
        else:
            print(f"Session archived as {entry.id}, score {entry.score}/100")
    elif command == "reset":
        coach.reset()
        print("Session discarded.")
    elif command == "dashboard":
        signals = await coach.dashboard()
        print(f"Signal quality: {signals.signal_quality.value}")
        print(f"Baseline: {signals.baseline.text} ({signals.baseline.grounding})")
        print(f"Focus: {signals.focus.focus}: {signals.focus.action}")
        print(f"Progress: {signals.progress.description}")
        for point in signals.constellation.points:
            print(f"  {point.competency}: {point.strength:.2f}")
    elif command == "history":
        for entry in await coach.history_entries():
            print(f"{entry.id}  {entry.role}  {entry.score}/100  {entry.questions_count} questions")
    elif command == "export":
        parts = arg.split()
        if not parts:
            print("Usage: export <id> [json] | export all")
            return True
        if parts[0] == "all":
            exported = await coach.export_all()
        else:
            fmt = "json" if len(parts) > 1 and parts[1] == "json" else "text"
            exported = await coach.export(parts[0], fmt)
        if exported is None:
            print("No such history entry.")
        else:
            filename, content = exported
            Path(filename).write_text(content, encoding="utf-8")
            print(f"Saved {filename}")
    elif command == "delete":
        deleted = await coach.delete_history_entry(arg)
        print("Deleted." if deleted else "No such history entry.")
    elif command == "clear":
        print(f"Removed {await coach.clear_history()} sessions.")
    elif command in ("quit", "exit"):
        return False
    else:
        print(HELP)
    return True


async def main():
    """Run the console coach until the user quits."""
    logger.info("Starting interview coach...")

    logger.info("Initializing database at %s", settings.DATABASE_PATH)
    db = await database.init_database(settings.DATABASE_PATH)
    database.db = db

    coach = await InterviewCoach.create(user_id=settings.USER_ID)
    print(HELP)
    show_question(coach)

    try:
        while True:
            line = await asyncio.to_thread(input, "> ")
            command, _, arg = line.strip().partition(" ")
            try:
                if not await handle(coach, command.lower(), arg.strip()):
                    break
            except InterviewCoachError as e:
                print(f"Error: {e}")
    except EOFError:
        pass
    finally:
        await coach.close()
        await db.close()
        logger.info("Interview coach stopped")


def run():
    setup_logging()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Stopped by user")
    except Exception as e:
        logger.error("Fatal error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    run()
