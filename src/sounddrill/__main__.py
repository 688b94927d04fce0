"""Console practice shell."""
import argparse
import logging
import sys
from typing import Any, List, Optional

from sounddrill import __version__
from sounddrill.app import SoundDrill
from sounddrill.config import ensure_directories, settings
from sounddrill.logging_config import setup_logging
from sounddrill.models.session_models import SessionMode
from sounddrill.services.session_service import (
    BaseSessionOrchestrator,
    PairDiscriminationSession,
    RoundOutcome,
    SoundDecompositionSession,
    SyllableCountSession,
)

logger = logging.getLogger(__name__)

QUIT = "q"
REPLAY = "r"
NEXT = "n"


def _prompt(session: BaseSessionOrchestrator) -> str:
    item = session.current
    if isinstance(session, PairDiscriminationSession):
        first, second = item.words
        return f"Which word did you hear? 1) {first}  2) {second}  [c]ompare  [p1/p2] play a word"
    if isinstance(session, SyllableCountSession):
        return "How many syllables?"
    if isinstance(session, SoundDecompositionSession):
        pool = "  ".join(f"{index}) /{phoneme}/" for index, phoneme in enumerate(session.sound_pool, start=1))
        return f"Pick the sounds in order (numbers separated by spaces): {pool}  [h]int  [p N] play sound N"
    sounds = "  ".join(f"{index}) {sound.letter}" for index, sound in enumerate(item.sounds, start=1))
    return f"{item.word}: {sounds}  (number to hear a sound, Enter for the next word)"


def _parse(session: BaseSessionOrchestrator, answer: str) -> Optional[Any]:
    """Turn console input into a response, None when it is a command."""
    if isinstance(session, PairDiscriminationSession):
        if answer == "c":
            session.compare()
            return None
        if answer in ("p1", "p2"):
            session.play_word(session.current.words[int(answer[1]) - 1])
            return None
        if answer in ("1", "2"):
            return session.current.words[int(answer) - 1]
        return answer
    if isinstance(session, SyllableCountSession):
        return answer
    if isinstance(session, SoundDecompositionSession):
        if answer == "h":
            hint = session.hint()
            print(f"Hint: the first sound is /{hint.phoneme}/ ({hint.letter})")
            return None
        command, _, number = answer.partition(" ")
        if command == "p" and number.isdigit() and 1 <= int(number) <= len(session.sound_pool):
            session.play_sound(session.sound_pool[int(number) - 1])
            return None
        picked: List[str] = []
        for token in answer.split():
            if token.isdigit() and 1 <= int(token) <= len(session.sound_pool):
                picked.append(session.sound_pool[int(token) - 1])
            else:
                picked.append(token.strip("/"))
        return picked
    if answer.isdigit():
        session.voice_sound(int(answer) - 1)
        return None
    return True


def _show(outcome: RoundOutcome) -> None:
    feedback = outcome.feedback
    print(feedback.message)
    if feedback.tip:
        print(f"Tip: {feedback.tip}")
    if feedback.suggestion:
        print(feedback.suggestion)
    if outcome.reveal_answer:
        print(f"Answer: {outcome.reveal_answer}")
    bonus = f" (+{outcome.bonus} streak bonus)" if outcome.bonus else ""
    print(f"Score: {outcome.score}{bonus}  Streak: {outcome.streak}")


def run_session(app: SoundDrill, mode: SessionMode) -> None:
    """Run practice rounds until the learner quits."""
    session = app.start_session(mode)
    while True:
        if session.next() is None:
            print("Nothing to practice here yet.")
            return
        session.play_stimulus()

        while True:
            answer = input(f"{_prompt(session)}\n> ").strip()
            if answer == QUIT:
                return
            if answer == NEXT:
                break
            if answer == REPLAY:
                session.play_stimulus()
                continue

            response = _parse(session, answer)
            if response is None:
                continue
            outcome = session.submit(response)
            if outcome is None:
                print("Please answer with one of the choices.")
                continue
            _show(outcome)
            if outcome.is_correct:
                break
            if isinstance(session, PairDiscriminationSession) and session.tip_for(response):
                print(f"About {response}: {session.tip_for(response)}")
            session.try_again()
            print("Try again, [r] to replay or [n] for the next one.")

        advice = session.break_advice()
        if advice.should_break:
            print(advice.reason)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(prog="sounddrill", description="Practice hearing English sounds.")
    parser.add_argument(
        "mode",
        nargs="?",
        default=SessionMode.PAIR_DISCRIMINATION.value,
        choices=[mode.value for mode in SessionMode if mode is not SessionMode.BASE],
    )
    parser.add_argument("--user", default=settings.session.default_user)
    args = parser.parse_args(argv)

    ensure_directories()
    setup_logging(f"Starting SoundDrill v{__version__} ...")

    with SoundDrill(user_key=args.user) as app:
        try:
            run_session(app, SessionMode(args.mode))
        except (KeyboardInterrupt, EOFError):
            print()
            logger.info("Received keyboard interrupt, shutting down...")

        summary = app.progress_summary()
        stats = summary.stats
        print(
            f"Overall: {stats.total_correct} of {stats.total_attempts} correct "
            f"({stats.total_accuracy:.0%}) over {stats.days_active} day(s)"
        )
        if summary.recommendations.has_problem_areas:
            recommendations = summary.recommendations
            keys = [item.key for item in recommendations.sounds]
            keys += [" / ".join(item.words) for item in recommendations.pairs]
            print(f"Worth practicing: {', '.join(keys)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
