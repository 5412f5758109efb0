"""Operator-facing message catalogue, looked up through `_msg(key, **kwargs)`."""

TRANSLATIONS = {
    "en": {
        # ===== STARTUP =====
        "header": "=" * 65,
        "title": "TIMED ASSESSMENT RUNNER",
        "config_error": "Configuration error: {error}",
        "bank_missing": "Error: Question bank '{bank}' not found.",
        "ask_enc_pass": "Enter the decryption key or password for {bank}: ",
        "enc_error": "Error: A key or password is required for encrypted banks.",
        "enc_exit": "Exiting...",
        "bank_loading": "\nLoading question bank...",
        "bank_error": "Error loading question bank: {error}",
        "bank_success": "✓ Question bank loaded ({count} exams)",

        # ===== AUTHENTICATION =====
        "auth_header": "CANDIDATE AUTHENTICATION",
        "ask_candidate": "Candidate ID: ",
        "candidate_error": "Error: Candidate ID cannot be empty.",
        "auth_cancel": "\nAuthentication cancelled.",
        "auth_success": "\n✓ Authenticated as {candidate}",

        # ===== EXAM LISTING =====
        "list_header": "Available exams:",
        "list_entry": "  [{id}] {title} - {duration} min, {marks} marks - {status}",
        "list_open": "not attempted",
        "list_attempted": "attempted ({score}/{total})",
        "ask_exam": "Exam ID to take: ",
        "exam_id_error": "Error: Exam ID cannot be empty.",
        "exam_error": "Error: {error}",
        "already_taken": "You have already taken this exam!",

        # ===== LOBBY =====
        "lobby_header": "EXAM LOBBY: {title}",
        "lobby_rules": (
            "Duration: {duration} minutes | Total marks: {marks}\n"
            "Secure mode is required for the whole exam. Losing it hides the questions\n"
            "and counts as an integrity warning. After {warnings} warnings the exam is\n"
            "submitted automatically."
        ),
        "lobby_negative": "Negative marking: every wrong multiple-choice answer costs 1 mark.",
        "lobby_check": "Checking exam environment...",
        "lobby_retry": "Fix the problems above, then type 'r' to re-check (anything else quits): ",
        "lobby_grant": "\nEnvironment OK. Type 'start' to enter secure mode and begin the exam: ",
        "lobby_declined": "Secure mode not granted. The exam was not started.",

        # ===== SESSION EVENTS =====
        "exam_started": "\n✓ Exam started: {questions} questions, time remaining {remaining}",
        "time_warning": "⚠ Less than {minutes} minute(s) remaining!",
        "violation_context_lost": "⚠ INTERNET CONNECTION DETECTED - secure mode lost.",
        "violation_focus_lost": "⚠ AI ASSISTANT DETECTED - close it to continue.",
        "content_hidden": "Questions are hidden until secure mode is restored.",
        "integrity_warning": "Integrity warning {count}/{max_warnings}.",
        "secure_restored": "✓ Secure mode restored. You may continue.",
        "submitting_manual": "Submitting your exam...",
        "submitting_time_expired": "⏰ Time is up! Submitting your exam automatically...",
        "submitting_integrity_exceeded": "Too many integrity warnings. Submitting your exam automatically...",
        "session_ended": "The exam session has ended. Press Enter to see your results.",

        # ===== COMMANDS =====
        "cmd_help_text": (
            "Commands:\n"
            "  show           Show the current question\n"
            "  next / prev    Move to the next or previous question\n"
            "  goto N         Jump to question N\n"
            "  answer N       Select option N for the current question\n"
            "  code FILE      Save FILE as your answer to the current coding question\n"
            "  sample         Run your saved code against the sample input\n"
            "  clear          Clear the answer to the current question\n"
            "  flag           Flag or unflag the current question for review\n"
            "  flagged        List questions flagged for review\n"
            "  time           Show the remaining time\n"
            "  status         Show answered questions and integrity warnings\n"
            "  submit         Submit the exam (asks for confirmation)\n"
            "  confirm        Confirm a pending submission\n"
            "  cancel         Cancel a pending submission\n"
            "  help           Show this help"
        ),
        "cmd_unknown": "Unknown command: '{command}'. Type 'help' for a list of commands.",
        "cmd_interrupt": "Use 'submit' to finish the exam.",
        "cmd_blocked": "Not allowed: {error}",
        "cmd_invalid": "Invalid input: {error}",
        "cmd_unexpected": "An unexpected error occurred: {error}",

        "cmd_show_empty": "This exam has no questions.",
        "cmd_show_heading": "Question {num}/{total} (id {qid}, {type}, {marks} marks)",
        "cmd_show_flagged": "[flagged for review]",
        "cmd_show_input_format": "\nInput format:\n{text}",
        "cmd_show_output_format": "\nOutput format:\n{text}",
        "cmd_show_sample_input": "\nSample input:\n{text}",
        "cmd_show_sample_output": "\nSample output:\n{text}",
        "cmd_show_code_saved": "\n✓ Code saved ({lines} lines)",
        "cmd_show_code_missing": "\nNo code saved yet. Use 'code FILE' to save your solution.",

        "cmd_goto_usage": "Usage: goto N",
        "cmd_answer_usage": "Usage: answer N (option number)",
        "cmd_answer_saved": "✓ Option {option} selected for question {qid}",
        "cmd_code_usage": "Usage: code FILE",
        "cmd_code_missing": "Error: File '{file}' not found.",
        "cmd_code_saved": "✓ {file} saved for question {qid} ({lines} lines)",
        "cmd_clear_done": "✓ Answer cleared",
        "cmd_sample_not_code": "The current question is not a coding question.",
        "cmd_sample_running": "\nRunning your code against the sample...",
        "cmd_sample_unavailable": "Code execution is unavailable: {error}",
        "cmd_flag_on": "✓ Question {qid} flagged for review",
        "cmd_flag_off": "✓ Question {qid} unflagged",
        "cmd_flagged_none": "No questions flagged for review.",
        "cmd_flagged_list": "Flagged for review: {questions}",

        "cmd_time_heading": "Time remaining: {remaining}",
        "cmd_time_elapsed": "Time elapsed: {elapsed}",

        "cmd_status_header": "Status for {candidate}:",
        "cmd_status_answered": "answered",
        "cmd_status_missing": "not answered",
        "cmd_status_flag": " [flagged]",
        "cmd_status_total": "Answered: {answered}/{total}",
        "cmd_status_integrity": "Integrity warnings: {count}/{max_warnings}",

        "cmd_submit_summary": "You answered {answered} of {total} questions ({flagged} flagged for review).",
        "cmd_submit_unanswered": "⚠ {count} question(s) are still unanswered.",
        "cmd_submit_confirm": "Type 'confirm' to submit or 'cancel' to continue the exam.",
        "cmd_cancel_done": "Submission cancelled. Continue your exam.",

        # ===== RESULTS =====
        "submit_error": "Submission failed: {error}",
        "result_score": "SCORE: {score} / {total} ({percentage:.2f}%)",
        "result_id": "Submission ID: {id}",
        "result_file": "Results written to: {path}",

        # ===== CODE RUNNER =====
        "runner_running_tests": "Running {total} test case(s)...",
        "runner_case_passed": "  ✓ Test {num} passed ({ms} ms)",
        "runner_case_timeout": "  ✗ Test {num} failed: timeout",
        "runner_case_error": "  ✗ Test {num} failed: runtime error",
        "runner_case_wrong": "  ✗ Test {num} failed: wrong output",
        "runner_error_label": "    Error: {text}",
        "runner_actual_output": "    Your output:     {output}",
        "runner_expected_output": "    Expected output: {output}",
        "runner_summary": "Passed {passed}/{total} test case(s)",
    }
}
