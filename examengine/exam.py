"""
Terminal exam runner.

Loads a question bank, authenticates the candidate, runs the lobby
environment check, then drives a ProctoredSession through an interactive
command loop. The graded submission and a human-readable results file are
written to the submission store.
"""

import sys
import argparse
import getpass
from pathlib import Path
from typing import Optional

from .bank import QuestionBank, load_bank
from .config_loader import load_config
from .errors import AssessmentError, DuplicateAttempt, ExamNotFound, SessionStateError
from .grader import CodeRunner, Grader
from .guard import SubmissionGuard
from .integrity import IntegrityMonitor, default_probes, check_environment_at_startup
from .messages import TRANSLATIONS
from .models import Identity, SessionConfig, TestCase
from .review import build_review, exam_listing, format_results
from .session import ProctoredSession, SessionEvent, SessionState, format_seconds
from .sessionlog import SessionLog
from .store import JsonFileStore, record_stem

TIME_WARNINGS_SECONDS = (300, 60)


class ExamRunner:
    """Main CLI application controller."""

    def __init__(self):
        self.bank: Optional[QuestionBank] = None
        self.config: Optional[SessionConfig] = None
        self.store: Optional[JsonFileStore] = None
        self.identity: Optional[Identity] = None
        self.session: Optional[ProctoredSession] = None
        self.session_log: Optional[SessionLog] = None
        self.code_runner: Optional[CodeRunner] = None
        self.messages = TRANSLATIONS["en"]

    def _msg(self, key: str, **kwargs) -> str:
        template = self.messages.get(key, key)
        return template.format(**kwargs)

    def log(self, event: str, details: str = ""):
        if self.session_log:
            self.session_log.log(event, details)

    # ===== STARTUP =====

    def run(self, argv=None) -> int:
        """Main application entry point."""
        parser = argparse.ArgumentParser(
            description="Timed Assessment Runner",
            formatter_class=argparse.RawDescriptionHelpFormatter
        )
        parser.add_argument(
            "--bank",
            required=True,
            help="Question bank file (.json for plain banks, anything else is treated as encrypted)"
        )
        parser.add_argument(
            "--exam",
            help="Exam id to take (default: prompt the candidate)"
        )
        parser.add_argument(
            "--config",
            help="Path to session configuration file (default: config.json in executable directory)"
        )
        parser.add_argument(
            "--store",
            help="Directory where submissions are stored (default: store_dir from the configuration)"
        )
        parser.add_argument(
            "--list",
            action="store_true",
            help="List the exams in the bank with the candidate's attempt status and exit"
        )

        args = parser.parse_args(argv)

        try:
            self.config = load_config(Path(args.config) if args.config else None)
        except ValueError as e:
            print(self._msg("config_error", error=e))
            return 1

        print(self._msg("header"))
        print(self._msg("title"))
        print(self._msg("header"))

        bank_path = Path(args.bank)
        if not bank_path.exists():
            print(self._msg("bank_missing", bank=bank_path))
            return 1

        key_input = None
        if bank_path.suffix.lower() != '.json':
            try:
                key_input = getpass.getpass(self._msg("ask_enc_pass", bank=bank_path.name))
            except (KeyboardInterrupt, EOFError):
                print(f"\n{self._msg('enc_exit')}")
                return 1
            if not key_input or not key_input.strip():
                print(self._msg("enc_error"))
                return 1
            key_input = key_input.strip()

        print(self._msg("bank_loading"))
        try:
            self.bank = load_bank(bank_path, key_input)
        except (ValueError, OSError) as e:
            print(self._msg("bank_error", error=e))
            return 1
        print(self._msg("bank_success", count=len(self.bank.exams())))

        if not self.authenticate_candidate():
            return 1

        self.store = JsonFileStore(args.store or self.config.store_dir)

        if args.list:
            self.cmd_list()
            return 0

        exam_id = args.exam or self._prompt_exam()
        if exam_id is None:
            return 1

        return self.take_exam(exam_id)

    def authenticate_candidate(self) -> bool:
        """Prompt for the candidate id."""
        print("\n" + self._msg("header"))
        print(self._msg("auth_header"))
        print(self._msg("header"))

        try:
            candidate_id = input(self._msg("ask_candidate")).strip()
        except (KeyboardInterrupt, EOFError):
            print(self._msg("auth_cancel"))
            return False

        if not candidate_id:
            print(self._msg("candidate_error"))
            return False

        self.identity = Identity(candidate_id=candidate_id)
        print(self._msg("auth_success", candidate=candidate_id))
        return True

    def _prompt_exam(self) -> Optional[str]:
        self.cmd_list()
        try:
            exam_id = input(self._msg("ask_exam")).strip()
        except (KeyboardInterrupt, EOFError):
            print(self._msg("auth_cancel"))
            return None
        if not exam_id:
            print(self._msg("exam_id_error"))
            return None
        return exam_id

    def cmd_list(self):
        """Display every exam with the candidate's attempt status."""
        print()
        print(self._msg("list_header"))
        for entry in exam_listing(self.bank, self.store, self.identity.candidate_id):
            if entry["is_attempted"]:
                status = self._msg("list_attempted", score=entry["score"], total=entry["total_score"])
            else:
                status = self._msg("list_open")
            print(self._msg(
                "list_entry",
                id=entry["id"],
                title=entry["title"],
                duration=entry["duration"],
                marks=entry["totalMarks"],
                status=status
            ))
        print()

    # ===== EXAM =====

    def _log_path(self, exam_key: str) -> Path:
        return self.store.root_dir / "logs" / f"{record_stem(exam_key, self.identity.candidate_id)}.log"

    def take_exam(self, exam_id) -> int:
        """Lobby, session and results for one exam."""
        try:
            exam = self.bank.get_exam(exam_id)
        except ExamNotFound as e:
            print(self._msg("exam_error", error=e.message))
            return 1

        if self.store.exists(exam.id, self.identity.candidate_id):
            print(self._msg("already_taken"))
            return 1

        self.session_log = SessionLog(self._log_path(exam.key))
        self.log("SESSION_START", f"Candidate: {self.identity.candidate_id}, Exam: {exam.key}")

        self.code_runner = CodeRunner(
            timeout_sec=self.config.per_case_timeout_seconds,
            memory_limit_mb=self.config.memory_limit_mb
        )
        self.code_runner.set_message_fn(self._msg)
        grader = Grader(self.code_runner, session_logger=self.log)
        guard = SubmissionGuard(
            self.bank,
            self.store,
            grader=grader,
            grace_seconds=self.config.submission_grace_seconds,
            session_logger=self.log
        )

        probes = default_probes(
            network=self.config.network_monitoring,
            assistants=self.config.assistant_monitoring
        )

        if not self.lobby(exam, probes):
            self.log("SESSION_ABORTED", "Candidate left the lobby")
            return 1

        self.session = ProctoredSession(
            exam.id,
            self.bank,
            guard.dispatcher(self.identity),
            config=self.config,
            monitor_factory=lambda s: IntegrityMonitor(
                s,
                probes,
                check_interval_seconds=self.config.integrity_check_interval_seconds,
                session_logger=self.log
            ),
            verdict_fn=grader.collect_verdicts,
            session_logger=self.log
        )
        self.session.subscribe(self.on_session_event)

        try:
            self.session.enter(secure_granted=True)
        except AssessmentError as e:
            print(self._msg("exam_error", error=e.message))
            self.log("EXAM_START_FAILED", e.message)
            return 1

        if self.session.state == SessionState.ACTIVE:
            self.command_loop()
        return self.finish()

    def lobby(self, exam, probes) -> bool:
        """Environment check and explicit secure-mode grant."""
        print("\n" + self._msg("header"))
        print(self._msg("lobby_header", title=exam.title))
        print(self._msg("header"))
        print(self._msg("lobby_rules", duration=exam.duration_minutes, marks=exam.total_marks,
                        warnings=self.config.max_warnings))
        if exam.negative_marking:
            print(self._msg("lobby_negative"))

        while True:
            print(f"\n{self._msg('lobby_check')}")
            secure, failed = check_environment_at_startup(probes)
            if secure:
                break
            for kind in failed:
                print(self._msg(f"violation_{kind}"))
            self.log("LOBBY_CHECK_FAILED", ", ".join(failed))
            try:
                retry = input(self._msg("lobby_retry")).strip().lower()
            except (KeyboardInterrupt, EOFError):
                return False
            if retry != 'r':
                return False

        try:
            grant = input(self._msg("lobby_grant")).strip().lower()
        except (KeyboardInterrupt, EOFError):
            return False
        if grant != 'start':
            print(self._msg("lobby_declined"))
            return False

        self.log("SECURE_GRANTED")
        return True

    def on_session_event(self, event: SessionEvent):
        """Render session notifications; called from the timer and monitor threads too."""
        data = event.data
        if event.kind == "started":
            print(self._msg("exam_started", questions=data["questions"], remaining=format_seconds(data["remaining"])))
        elif event.kind == "tick":
            if data["remaining"] in TIME_WARNINGS_SECONDS:
                print(f"\n{self._msg('time_warning', minutes=data['remaining'] // 60)}")
        elif event.kind == "insecure":
            print("\n" + "!" * 65)
            print(self._msg(f"violation_{data['kind']}"))
            print(self._msg("content_hidden"))
            print("!" * 65)
        elif event.kind == "warning":
            print(self._msg("integrity_warning", count=data["count"], max_warnings=data["max_warnings"]))
        elif event.kind == "secure":
            print(f"\n{self._msg('secure_restored')}")
        elif event.kind == "submitting":
            print(f"\n{self._msg('submitting_' + data['reason'])}")
        elif event.kind == "terminated":
            print(self._msg("session_ended"))

    # ===== COMMAND LOOP =====

    def command_loop(self):
        """Main interactive command loop."""
        print("\n" + self._msg("header"))
        print(self._msg("cmd_help_text"))
        print(self._msg("header") + "\n")
        self.cmd_show()

        while self.session.state == SessionState.ACTIVE:
            try:
                cmd_line = input("exam> ").strip()
                if self.session.state != SessionState.ACTIVE:
                    break
                if not cmd_line:
                    continue

                parts = cmd_line.split(maxsplit=1)
                command = parts[0].lower()
                argument = parts[1].strip() if len(parts) > 1 else ""

                self.log("COMMAND_RUN", f"Command: {cmd_line}")

                if command == 'help':
                    print(self._msg("cmd_help_text"))
                elif command == 'show':
                    self.cmd_show()
                elif command == 'next':
                    self.session.next_question()
                    self.cmd_show()
                elif command == 'prev':
                    self.session.previous_question()
                    self.cmd_show()
                elif command == 'goto':
                    self.cmd_goto(argument)
                elif command == 'answer':
                    self.cmd_answer(argument)
                elif command == 'code':
                    self.cmd_code(argument)
                elif command == 'sample':
                    self.cmd_sample()
                elif command == 'clear':
                    self.session.clear_answer(self.session.current_question.id)
                    print(self._msg("cmd_clear_done"))
                elif command == 'flag':
                    self.cmd_flag()
                elif command == 'flagged':
                    self.cmd_flagged()
                elif command == 'time':
                    self.cmd_time()
                elif command == 'status':
                    self.cmd_status()
                elif command == 'submit':
                    self.cmd_submit()
                elif command == 'confirm':
                    self.cmd_confirm()
                elif command == 'cancel':
                    self.session.cancel_submit()
                    print(self._msg("cmd_cancel_done"))
                else:
                    print(self._msg("cmd_unknown", command=command))

            except (KeyboardInterrupt, EOFError):
                print(f"\n{self._msg('cmd_interrupt')}")
            except SessionStateError as e:
                print(self._msg("cmd_blocked", error=e.message))
            except (ValueError, IndexError) as e:
                print(self._msg("cmd_invalid", error=e))
            except Exception as e:
                print(self._msg("cmd_unexpected", error=e))
                self.log("ERROR", str(e))

    def cmd_show(self):
        """Display the current question."""
        view = self.session.current_view()
        print()
        if view["blocked"]:
            print(self._msg("content_hidden"))
            return

        question = view.get("question")
        if question is None:
            print(self._msg("cmd_show_empty"))
            return

        print(self._msg(
            "cmd_show_heading",
            num=view["index"] + 1,
            total=view["total"],
            qid=question["id"],
            type=question["type"],
            marks=question["marks"]
        ))
        if view["flagged"]:
            print(self._msg("cmd_show_flagged"))
        print()

        if question["type"] == "CODE":
            print(question["problemDescription"])
            if question["inputFormat"]:
                print(self._msg("cmd_show_input_format", text=question["inputFormat"]))
            if question["outputFormat"]:
                print(self._msg("cmd_show_output_format", text=question["outputFormat"]))
            if question["sampleInput"] or question["sampleOutput"]:
                print(self._msg("cmd_show_sample_input", text=question["sampleInput"]))
                print(self._msg("cmd_show_sample_output", text=question["sampleOutput"]))
            answer = view["answer"]
            if answer:
                print(self._msg("cmd_show_code_saved", lines=len(answer.splitlines())))
            else:
                print(self._msg("cmd_show_code_missing"))
        else:
            print(question["text"])
            print()
            for num, option in enumerate(question["options"], start=1):
                marker = "*" if view["answer"] == num - 1 else " "
                print(f"  [{marker}] {num}. {option}")
        print()

    def cmd_goto(self, argument: str):
        if not argument.isdigit():
            print(self._msg("cmd_goto_usage"))
            return
        self.session.go_to(int(argument) - 1)
        self.cmd_show()

    def cmd_answer(self, argument: str):
        """Select option N (1-based) for the current question."""
        if not argument.isdigit() or int(argument) < 1:
            print(self._msg("cmd_answer_usage"))
            return
        question = self.session.current_question
        self.session.select_option(question.id, int(argument) - 1)
        print(self._msg("cmd_answer_saved", option=argument, qid=question.id))

    def cmd_code(self, argument: str):
        """Store the contents of FILE as the answer to the current CODE question."""
        if not argument:
            print(self._msg("cmd_code_usage"))
            return
        code_file = Path(argument)
        if not code_file.is_file():
            print(self._msg("cmd_code_missing", file=code_file))
            return
        source = code_file.read_text(encoding='utf-8')
        question = self.session.current_question
        self.session.set_code(question.id, source)
        print(self._msg("cmd_code_saved", file=code_file.name, qid=question.id, lines=len(source.splitlines())))

    def cmd_sample(self):
        """Run the saved source of the current CODE question against its visible sample."""
        view = self.session.current_view()
        if view["blocked"]:
            print(self._msg("content_hidden"))
            return
        question = self.session.current_question
        if question is None or not question.is_code:
            print(self._msg("cmd_sample_not_code"))
            return
        source = view["answer"]
        if not source:
            print(self._msg("cmd_show_code_missing"))
            return

        print(self._msg("cmd_sample_running"))
        sample = TestCase(input=question.sample_input, expected_output=question.sample_output)
        try:
            report = self.code_runner.run(source, [sample])
        except AssessmentError as e:
            print(self._msg("cmd_sample_unavailable", error=e.message))
            return
        print(self.code_runner.format_run_report(report, show_details=True))

    def cmd_flag(self):
        question = self.session.current_question
        if self.session.toggle_review(question.id):
            print(self._msg("cmd_flag_on", qid=question.id))
        else:
            print(self._msg("cmd_flag_off", qid=question.id))

    def cmd_flagged(self):
        flagged = self.session.flagged_for_review()
        if not flagged:
            print(self._msg("cmd_flagged_none"))
            return
        positions = {q.key: i + 1 for i, q in enumerate(self.session.questions)}
        print(self._msg("cmd_flagged_list", questions=", ".join(f"Q{positions[key]}" for key in flagged)))

    def cmd_time(self):
        """Display remaining exam time."""
        status = self.session.status()
        print()
        print(self._msg("cmd_time_heading", remaining=format_seconds(status["remaining_seconds"])))
        print(self._msg("cmd_time_elapsed", elapsed=format_seconds(self.session.elapsed_seconds)))
        if status["remaining_seconds"] <= TIME_WARNINGS_SECONDS[0]:
            print(self._msg("time_warning", minutes=max(1, status["remaining_seconds"] // 60)))
        print()

    def cmd_status(self):
        """Display answer and integrity status."""
        status = self.session.status()
        answers = self.session.answers
        flagged = set(self.session.flagged_for_review())
        print()
        print(self._msg("cmd_status_header", candidate=self.identity.candidate_id))
        for num, question in enumerate(self.session.questions, start=1):
            state = self._msg("cmd_status_answered") if question.key in answers else self._msg("cmd_status_missing")
            flag = self._msg("cmd_status_flag") if question.key in flagged else ""
            print(f"- Q{num} ({question.type}): {state}{flag}")
        print()
        print(self._msg("cmd_status_total", answered=status["answered"], total=status["total"]))
        print(self._msg("cmd_status_integrity", count=status["violations"], max_warnings=status["max_warnings"]))
        print()

    def cmd_submit(self):
        summary = self.session.request_submit()
        print()
        print(self._msg("cmd_submit_summary", **summary))
        if summary["answered"] < summary["total"]:
            print(self._msg("cmd_submit_unanswered", count=summary["total"] - summary["answered"]))
        print(self._msg("cmd_submit_confirm"))

    def cmd_confirm(self):
        self.session.confirm_submit()

    # ===== RESULTS =====

    def finish(self) -> int:
        """Report the outcome of the session and write the results file."""
        outcome = self.session.outcome
        if outcome is None:
            return 1

        if not outcome.ok:
            error = outcome.error
            if isinstance(error, DuplicateAttempt):
                print(self._msg("already_taken"))
            elif isinstance(error, AssessmentError):
                print(self._msg("submit_error", error=error.message))
            else:
                print(self._msg("submit_error", error=error))
            return 1

        submission = outcome.result
        exam = self.session.exam
        review = build_review(submission, self.session.questions)
        results_path = self._log_path(exam.key).with_suffix(".results.txt")
        with open(results_path, 'w', encoding='utf-8') as f:
            f.write(format_results(exam, submission, review))

        self.log("SESSION_FINISH", f"Score: {submission.score}/{submission.total_score}")

        print()
        print(self._msg("header"))
        print(self._msg("result_score", score=submission.score, total=submission.total_score,
                        percentage=submission.percentage))
        print(self._msg("result_id", id=submission.id))
        print(self._msg("result_file", path=results_path))
        print(self._msg("header"))
        return 0


def main():
    """Entry point for the exam runner."""
    runner = ExamRunner()
    sys.exit(runner.run())


if __name__ == "__main__":
    main()
