"""
Study.AI - Exam Generator
Main Flask Application
"""

import io
import json
import logging
import time
from datetime import datetime

from flask import Flask, jsonify, render_template_string, request, send_file, session

import gemini_service
import settings
from admin import (
    AdminConfigError,
    check_credentials,
    default_admin_config,
    validate_admin_config,
)
from exam import (
    COUNT_DEFAULTS,
    COUNT_LIMITS,
    EDIT_ACTIONS,
    Difficulty,
    ExamEditError,
    QuestionConfig,
    TestData,
    apply_edit,
    parse_bool,
)
from gemini_service import GenerationError
from pdf_export import export_filename, generate_pdf
from utils import (
    FileIngestError,
    UnsupportedFileError,
    check_safety,
    ingest_upload,
    validate_input,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger("study_ai")

# Init Flask
app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = settings.MAX_UPLOAD_MB * 1024 * 1024
app.config["SECRET_KEY"] = settings.SECRET_KEY

NO_INPUT_MESSAGE = "NO_INPUT_DETECTED: Please upload a file or enter a text prompt to proceed."
CRITICAL_FAILURE_MESSAGE = "CRITICAL_FAILURE: Neural engine could not process request."


def approx_tokens(text):
    return len(text or "") // 4


def log_request(mode, start_time, tokens=0, metadata=None):
    """Log request telemetry to the telemetry file (best-effort, non-fatal if it fails)."""
    log_entry = {
        "timestamp": datetime.now().isoformat(),
        "mode": mode,
        "latency_ms": int((time.time() - start_time) * 1000),
        "tokens": tokens,
        "metadata": metadata or {},
    }
    try:
        with open(settings.TELEMETRY_PATH, "a", encoding="utf-8") as f:
            f.write(json.dumps(log_entry) + "\n")
    except OSError:
        logger.warning("Could not write telemetry to %s", settings.TELEMETRY_PATH)


def _json_body():
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


@app.errorhandler(413)
def too_large(_error):
    return jsonify({"error": f"File too large. Maximum upload size is {settings.MAX_UPLOAD_MB} MB."}), 413


@app.route("/")
def home():
    """Serve the main HTML interface."""
    boot = {
        "limits": COUNT_LIMITS,
        "defaults": QuestionConfig().to_dict(),
        "difficulties": [d.value for d in Difficulty],
        "adminDefaults": default_admin_config().to_dict(),
        "maxUploadMb": settings.MAX_UPLOAD_MB,
    }
    return render_template_string(HTML_TEMPLATE, boot=boot)


@app.route("/upload", methods=["POST"])
def upload():
    """Ingest an uploaded document into either inline file data or text."""
    start_time = time.time()

    if "file" not in request.files:
        return jsonify({"error": "No file provided"}), 400

    file = request.files["file"]
    if file.filename == "":
        return jsonify({"error": "No file selected"}), 400

    try:
        result = ingest_upload(file.filename, file.mimetype, file.read())
    except UnsupportedFileError as e:
        return jsonify({"error": str(e), "unsupported": True}), 400
    except FileIngestError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        logger.exception("File processing error for %s", file.filename)
        return jsonify({"error": "System error during file ingestion."}), 500

    log_request("upload", start_time, metadata={"kind": result.kind, "filename": file.filename})
    return jsonify(dict(result.to_dict(), success=True))


@app.route("/generate", methods=["POST"])
def generate():
    """Build a test from the uploaded file and/or pasted text."""
    start_time = time.time()

    data = _json_body()
    file = data.get("file")
    text_context = data.get("textContext") or ""
    config = QuestionConfig.from_dict(data.get("config"))

    if file is not None and not isinstance(file, dict):
        return jsonify({"error": "Invalid file payload."}), 400
    if not isinstance(text_context, str):
        return jsonify({"error": "Invalid text payload."}), 400
    if not file and not text_context.strip():
        return jsonify({"error": NO_INPUT_MESSAGE}), 400
    if len(text_context) > settings.MAX_CONTEXT_CHARS:
        return jsonify({"error": f"Text is too long. Maximum allowed is {settings.MAX_CONTEXT_CHARS} characters."}), 400
    if config.total_questions() == 0:
        return jsonify({"error": "Configure at least one question before generating."}), 400

    if config.topic_focus:
        validation = validate_input(config.topic_focus, settings.MAX_TOPIC_CHARS)
        if validation["error"]:
            return jsonify({"error": validation["message"]}), 400
        safety = check_safety(config.topic_focus)
        if not safety["safe"]:
            log_request("generate", start_time, metadata={"status": "blocked"})
            return jsonify({"error": safety["message"]}), 400

    try:
        test = gemini_service.generate_test_from_content(file, text_context, config)
    except GenerationError as e:
        logger.error("Generation failed: %s", e)
        log_request("generate", start_time, metadata={"error": str(e)})
        return jsonify({"error": str(e) or CRITICAL_FAILURE_MESSAGE}), 502
    except Exception as e:
        logger.exception("Generation request failed")
        log_request("generate", start_time, metadata={"error": str(e)})
        return jsonify({"error": str(e) or CRITICAL_FAILURE_MESSAGE}), 502

    payload = test.to_dict()
    log_request(
        "generate",
        start_time,
        approx_tokens(text_context) + approx_tokens(json.dumps(payload)),
        {
            "difficulty": config.difficulty.value,
            "requested": config.total_questions(),
            "returned": test.question_count(),
            "has_file": bool(file),
        },
    )
    return jsonify({
        "test": payload,
        "config": config.to_dict(),
        "latency_ms": int((time.time() - start_time) * 1000),
    })


@app.route("/exam/edit", methods=["POST"])
def edit_exam():
    """Apply one preview edit (move, delete, flag, update) to a test."""
    data = _json_body()
    action = data.get("action")
    if action not in EDIT_ACTIONS:
        return jsonify({"error": f"Unknown action '{action}'."}), 400

    try:
        test = TestData.from_dict(data.get("test"))
        updated = apply_edit(
            test,
            action,
            data.get("section"),
            data.get("index"),
            to_index=data.get("to"),
            fields=data.get("fields"),
        )
    except (ValueError, ExamEditError) as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"test": updated.to_dict(), "flagged": updated.flagged_items()})


@app.route("/export", methods=["POST"])
def export():
    """Render the (edited) test as a downloadable PDF."""
    start_time = time.time()
    data = _json_body()

    try:
        test = TestData.from_dict(data.get("test"))
    except ValueError as e:
        return jsonify({"error": f"Invalid test: {e}"}), 400

    try:
        include_answers = parse_bool(data.get("includeAnswers", True), "includeAnswers")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    config = QuestionConfig.from_dict(data.get("config"))
    pdf_bytes = generate_pdf(
        test,
        subtitle=config.pdf_subtitle,
        exam_name=config.exam_name,
        watermark_text=config.watermark_text,
        watermark_opacity=config.watermark_opacity,
        include_answers=include_answers,
    )

    log_request("export", start_time, metadata={"bytes": len(pdf_bytes), "questions": test.question_count()})
    return send_file(
        io.BytesIO(pdf_bytes),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=export_filename(test, config.exam_name),
    )


@app.route("/chat", methods=["POST"])
def chat():
    """Open-ended conversation with the Study AI persona."""
    start_time = time.time()
    data = _json_body()
    message = data.get("message") or ""
    history = data.get("history") or []

    if not isinstance(message, str) or not isinstance(history, list):
        return jsonify({"error": "Invalid chat payload."}), 400

    validation = validate_input(message, settings.MAX_CHAT_CHARS)
    if validation["error"]:
        return jsonify({"error": validation["message"]}), 400

    safety = check_safety(message)
    if not safety["safe"]:
        log_request("chat", start_time, metadata={"status": "blocked"})
        return jsonify({"error": safety["message"]}), 400

    try:
        reply = gemini_service.chat_with_study_ai(history, message)
    except Exception as e:
        logger.exception("Chat request failed")
        log_request("chat", start_time, metadata={"error": str(e)})
        return jsonify({"error": "Sorry, something went wrong. Please try again."}), 502

    log_request("chat", start_time, approx_tokens(message) + approx_tokens(reply),
                {"history": len(history)})
    return jsonify({"reply": reply, "timestamp": int(time.time() * 1000)})


@app.route("/admin/login", methods=["POST"])
def admin_login():
    data = _json_body()
    if not check_credentials(str(data.get("userId") or ""), str(data.get("password") or "")):
        logger.warning("Failed admin login from %s", request.remote_addr)
        return jsonify({"error": "Invalid credentials."}), 401
    session["is_admin"] = True
    return jsonify({"authenticated": True})


@app.route("/admin/logout", methods=["POST"])
def admin_logout():
    session.pop("is_admin", None)
    return jsonify({"authenticated": False})


@app.route("/admin/config", methods=["GET", "POST"])
def admin_config():
    """Defaults for the owner card (GET) or validation of an edited one (POST)."""
    if request.method == "GET":
        return jsonify({
            "config": default_admin_config().to_dict(),
            "authenticated": bool(session.get("is_admin")),
        })

    if not session.get("is_admin"):
        return jsonify({"error": "Admin login required."}), 401

    try:
        config = validate_admin_config(_json_body())
    except AdminConfigError as e:
        return jsonify({"error": str(e)}), 400

    logger.info("Admin configuration updated for owner %r", config.ownerName)
    return jsonify({"config": config.to_dict(), "message": "System Configuration Updated Successfully."})


@app.route("/status", methods=["GET"])
def status():
    """Get system status."""
    return jsonify(
        {
            "model": settings.GEMINI_MODEL,
            "api_key_configured": bool(settings.GEMINI_API_KEY),
            "limits": COUNT_LIMITS,
            "defaults": COUNT_DEFAULTS,
            "max_upload_mb": settings.MAX_UPLOAD_MB,
        }
    )


HTML_TEMPLATE = r"""
<!DOCTYPE html>
<html>
<head>
    <title>Study.AI - Exam Generator</title>
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <style>
        @import url('https://fonts.googleapis.com/css2?family=Inter:wght@400;500;600&family=Space+Grotesk:wght@500;700&display=swap');
        :root {
            --bg: #020617;
            --card: #0b1220;
            --card-alt: #111a2e;
            --accent: #22d3ee;
            --accent-strong: #67e8f9;
            --accent-soft: rgba(34, 211, 238, 0.1);
            --text: #e2e8f0;
            --muted: #94a3b8;
            --border: rgba(255, 255, 255, 0.08);
            --warning: #fbbf24;
            --error-bg: rgba(255, 99, 132, 0.12);
            --error-text: #ff708d;
            --success-bg: rgba(104, 211, 145, 0.12);
            --success-text: #7fd8a6;
        }
        * {
            margin: 0;
            padding: 0;
            box-sizing: border-box;
        }
        body {
            font-family: 'Inter', -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
            background: radial-gradient(circle at top, #0f172a 0%, #020617 60%);
            color: var(--text);
            min-height: 100vh;
            padding: 24px 20px 60px;
        }
        .container {
            max-width: 1040px;
            margin: 0 auto;
        }
        .header {
            display: flex;
            justify-content: space-between;
            align-items: center;
            gap: 16px;
            flex-wrap: wrap;
            margin-bottom: 24px;
        }
        .header h1 {
            font-family: 'Space Grotesk', 'Inter', sans-serif;
            font-size: 1.9em;
            letter-spacing: 0.04em;
        }
        .header h1 span {
            color: var(--accent);
        }
        .nav button {
            background: transparent;
            color: var(--muted);
            border: 1px solid var(--border);
            padding: 8px 16px;
            border-radius: 999px;
            cursor: pointer;
            margin-left: 6px;
            font-family: inherit;
        }
        .nav button.active {
            color: var(--bg);
            background: var(--accent);
            border-color: var(--accent);
        }
        .card {
            background: linear-gradient(160deg, rgba(11, 18, 32, 0.9), rgba(17, 26, 46, 0.95));
            border-radius: 18px;
            padding: 26px;
            margin-bottom: 22px;
            border: 1px solid var(--border);
            box-shadow: 0 20px 60px rgba(0, 0, 0, 0.55);
        }
        .card h2 {
            font-family: 'Space Grotesk', 'Inter', sans-serif;
            font-size: 1.2em;
            margin-bottom: 16px;
            letter-spacing: 0.08em;
            text-transform: uppercase;
        }
        .grid {
            display: grid;
            grid-template-columns: 1fr 1fr;
            gap: 22px;
        }
        @media (max-width: 820px) {
            .grid { grid-template-columns: 1fr; }
        }
        .tabs {
            display: flex;
            gap: 8px;
            margin-bottom: 14px;
        }
        .tab-btn, .btn-secondary {
            background: var(--card-alt);
            color: var(--muted);
            border: 1px solid var(--border);
            padding: 8px 14px;
            border-radius: 10px;
            cursor: pointer;
            font-family: inherit;
        }
        .tab-btn.active {
            color: var(--accent);
            border-color: var(--accent);
        }
        .upload-zone {
            border: 2px dashed rgba(34, 211, 238, 0.35);
            border-radius: 14px;
            padding: 38px;
            text-align: center;
            cursor: pointer;
            color: var(--muted);
            transition: all 0.3s ease;
        }
        .upload-zone:hover {
            background: var(--accent-soft);
            border-color: var(--accent);
        }
        .upload-zone input {
            display: none;
        }
        textarea, input[type=text], input[type=password], input[type=number], select {
            width: 100%;
            background: rgba(2, 6, 23, 0.7);
            color: var(--text);
            border: 1px solid var(--border);
            border-radius: 10px;
            padding: 10px 12px;
            font-family: inherit;
            font-size: 0.95em;
        }
        textarea {
            min-height: 220px;
            resize: vertical;
        }
        label {
            display: block;
            font-size: 0.75em;
            color: var(--muted);
            text-transform: uppercase;
            letter-spacing: 0.08em;
            margin: 10px 0 6px;
        }
        .counts {
            display: grid;
            grid-template-columns: 1fr 1fr;
            gap: 4px 14px;
        }
        .difficulty {
            display: flex;
            flex-wrap: wrap;
            gap: 6px;
        }
        .difficulty button.active {
            color: var(--bg);
            background: var(--accent);
        }
        .btn {
            background: linear-gradient(120deg, #22d3ee, #3b82f6);
            color: #020617;
            border: none;
            padding: 14px 26px;
            border-radius: 12px;
            cursor: pointer;
            font-weight: 600;
            font-family: inherit;
            font-size: 1em;
        }
        .btn:disabled {
            opacity: 0.5;
            cursor: not-allowed;
        }
        .error {
            background: var(--error-bg);
            color: var(--error-text);
            padding: 12px 14px;
            border-radius: 10px;
            margin-top: 12px;
        }
        .success {
            background: var(--success-bg);
            color: var(--success-text);
            padding: 12px 14px;
            border-radius: 10px;
            margin-top: 12px;
        }
        .loading-log {
            font-family: monospace;
            color: var(--accent-strong);
            margin-top: 14px;
            line-height: 1.7;
        }
        .hidden {
            display: none !important;
        }
        .paper {
            background: #fff;
            color: #1e293b;
            border-radius: 12px;
            padding: 48px;
        }
        .paper h1 {
            text-transform: uppercase;
            font-size: 1.8em;
        }
        .paper h3 {
            margin: 30px 0 14px;
            text-transform: uppercase;
            letter-spacing: 0.1em;
            border-bottom: 2px solid var(--accent);
            display: inline-block;
        }
        .q {
            position: relative;
            padding: 10px 12px;
            border-radius: 10px;
            border: 1px solid transparent;
            margin-bottom: 8px;
        }
        .q:hover {
            border-color: #e2e8f0;
        }
        .q.flagged {
            background: #fffbeb;
            border-color: #fcd34d;
        }
        .q .controls {
            position: absolute;
            top: 6px;
            right: 8px;
            display: none;
            gap: 4px;
        }
        .q:hover .controls {
            display: flex;
        }
        .controls button {
            border: 1px solid #e2e8f0;
            background: #fff;
            border-radius: 6px;
            cursor: pointer;
            padding: 2px 7px;
            font-size: 0.8em;
        }
        .answer {
            color: #0891b2;
            font-size: 0.9em;
            margin-top: 4px;
        }
        .match-cols {
            display: grid;
            grid-template-columns: 1fr 1fr;
            gap: 24px;
        }
        .chat-log {
            max-height: 460px;
            overflow-y: auto;
            margin-bottom: 14px;
        }
        .msg {
            padding: 12px 14px;
            border-radius: 12px;
            margin-bottom: 10px;
            line-height: 1.55;
        }
        .msg.user {
            background: var(--accent-soft);
            margin-left: 15%;
        }
        .msg.model {
            background: var(--card-alt);
            margin-right: 15%;
        }
        .msg pre {
            background: #020617;
            padding: 10px;
            border-radius: 8px;
            overflow-x: auto;
            margin: 8px 0;
        }
        .owner {
            display: flex;
            gap: 24px;
            align-items: center;
        }
        .owner img {
            width: 120px;
            height: 120px;
            border-radius: 50%;
            border: 2px solid var(--accent);
            background: var(--card-alt);
        }
        .overlay {
            position: fixed;
            inset: 0;
            background: rgba(2, 6, 23, 0.85);
            display: flex;
            align-items: center;
            justify-content: center;
            z-index: 50;
        }
        .overlay .card {
            max-width: 480px;
        }
        .overlay li {
            margin: 8px 0 8px 18px;
            color: var(--muted);
        }
    </style>
</head>
<body>
<div class="container">
    <div class="header">
        <h1>STUDY<span>.AI</span></h1>
        <div class="nav">
            <button data-view="generator" class="active">Generator</button>
            <button data-view="chat">Study AI Chat</button>
            <button data-view="about">About</button>
            <button data-view="admin">Admin</button>
        </div>
    </div>

    <!-- Generator view -->
    <div id="view-generator">
        <div class="grid">
            <div class="card">
                <h2>Data Portal</h2>
                <div class="tabs">
                    <button class="tab-btn active" data-tab="upload">File Stream</button>
                    <button class="tab-btn" data-tab="text">Text / Prompt</button>
                </div>
                <div id="tab-upload">
                    <label class="upload-zone" id="uploadZone">
                        <input type="file" id="fileInput"
                               accept=".pdf,.docx,.txt,.md,.csv,.json,.html,.js,.py,.png,.jpg,.jpeg,.webp,image/*,.pptx,.xlsx,.odt">
                        <div id="uploadLabel">Click to upload a PDF, image, Word document or text file</div>
                    </label>
                    <div id="fileInfo" class="hidden"></div>
                </div>
                <div id="tab-text" class="hidden">
                    <textarea id="textContext" placeholder="Paste notes, a chapter, or describe the topic to test..."></textarea>
                </div>
                <div id="uploadStatus"></div>
            </div>

            <div class="card">
                <h2>Configuration</h2>
                <div class="counts" id="counts"></div>
                <label>Difficulty</label>
                <div class="difficulty" id="difficulty"></div>
                <label for="topicFocus">Topic focus (chapter, page range)</label>
                <input type="text" id="topicFocus" data-key="topicFocus">
                <label for="examName">Exam name</label>
                <input type="text" id="examName" data-key="examName">
                <label for="pdfSubtitle">PDF subtitle</label>
                <input type="text" id="pdfSubtitle" data-key="pdfSubtitle">
                <label for="watermarkText">Watermark text</label>
                <input type="text" id="watermarkText" data-key="watermarkText">
                <label for="watermarkOpacity">Watermark opacity (<span id="opacityLabel"></span>%)</label>
                <input type="range" id="watermarkOpacity" min="0.05" max="0.5" step="0.05" style="width:100%">
            </div>
        </div>

        <div class="card">
            <button class="btn" id="generateBtn">Generate Test</button>
            <div id="loadingLog" class="loading-log hidden"></div>
            <div id="generateError"></div>
        </div>

        <div id="results" class="card hidden">
            <div style="display:flex; justify-content:space-between; align-items:center; margin-bottom:16px; gap:10px; flex-wrap:wrap;">
                <h2 style="margin:0">Preview</h2>
                <span id="flagSummary" style="color:var(--warning)"></span>
                <label style="margin:0; display:flex; gap:6px; align-items:center; text-transform:none;">
                    <input type="checkbox" id="includeAnswers" checked> Include answer key
                </label>
                <button class="btn" id="downloadBtn">Download PDF</button>
            </div>
            <div id="editError"></div>
            <div class="paper" id="paper"></div>
        </div>
    </div>

    <!-- Chat view -->
    <div id="view-chat" class="hidden">
        <div class="card">
            <h2>Study AI</h2>
            <div class="chat-log" id="chatLog"></div>
            <div style="display:flex; gap:10px;">
                <input type="text" id="chatInput" placeholder="Ask anything...">
                <button class="btn" id="chatSend">Send</button>
            </div>
            <div id="chatError"></div>
        </div>
    </div>

    <!-- About view -->
    <div id="view-about" class="hidden">
        <div class="card owner">
            <img id="ownerImage" alt="Owner avatar">
            <div>
                <h2 id="ownerName"></h2>
                <p id="ownerBio" style="color:var(--muted); line-height:1.6"></p>
            </div>
        </div>
    </div>

    <!-- Admin view -->
    <div id="view-admin" class="hidden">
        <div class="card" id="adminLogin" style="max-width:420px; margin:0 auto;">
            <h2>Restricted Access</h2>
            <label for="adminUser">User ID</label>
            <input type="text" id="adminUser" autocomplete="username">
            <label for="adminPass">Password</label>
            <input type="password" id="adminPass" autocomplete="current-password">
            <br><br>
            <button class="btn" id="adminLoginBtn">Authenticate</button>
            <div id="adminLoginError"></div>
        </div>
        <div class="card hidden" id="adminForm">
            <h2>Owner Configuration</h2>
            <label for="editName">Owner name</label>
            <input type="text" id="editName">
            <label for="editBio">Bio</label>
            <textarea id="editBio" style="min-height:120px"></textarea>
            <label for="editImage">Profile image URL</label>
            <input type="text" id="editImage">
            <label for="editImageFile">...or upload an image</label>
            <input type="file" id="editImageFile" accept="image/*">
            <br><br>
            <button class="btn" id="adminSaveBtn">Save</button>
            <button class="btn-secondary" id="adminLogoutBtn">Log out</button>
            <div id="adminStatus"></div>
        </div>
    </div>
</div>

<div class="overlay hidden" id="tutorial">
    <div class="card">
        <h2>Welcome to Study.AI</h2>
        <ol>
            <li>Upload a PDF, image or document, or paste text in the Data Portal.</li>
            <li>Set how many questions of each type you want and pick a difficulty.</li>
            <li>Generate, then reorder, edit, flag or delete questions in the preview.</li>
            <li>Download the finished paper as a PDF.</li>
        </ol>
        <br>
        <button class="btn" id="tutorialClose">Got it</button>
    </div>
</div>

<script>
    const BOOT = {{ boot | tojson }};
    const CONFIG_KEY = 'study_ai_config';
    const ADMIN_KEY = 'study_ai_admin_config';
    const TUTORIAL_KEY = 'study_ai_tutorial_seen';

    const COUNT_LABELS = {
        mcqCount: 'Multiple Choice',
        shortQCount: 'Short Answer',
        longQCount: 'Long Answer',
        tfCount: 'True / False',
        blankCount: 'Fill Blanks',
        essayCount: 'Essay Questions',
        matchCount: 'Matching Pairs'
    };
    const LOADING_STEPS = [
        'Initialising Neural Core...',
        'Encrypting Input Stream...',
        'Analyzing Context Vectors...',
        'Extracting Key Concepts...',
        'Synthesizing Questions...',
        'Verifying Logic Chains...',
        'Formatting Output Structure...',
        'Finalizing Secure Packet...'
    ];

    let config = loadJson(CONFIG_KEY, BOOT.defaults);
    let adminConfig = loadJson(ADMIN_KEY, BOOT.adminDefaults);
    let uploadedFile = null;
    let currentTest = null;
    let chatHistory = [{
        role: 'model',
        text: 'Hello. I am Study.AI, your advanced academic assistant. I can help explain concepts, draft study plans, or answer questions about your documents. How may I assist you?',
        timestamp: Date.now()
    }];

    function loadJson(key, fallback) {
        try {
            const saved = localStorage.getItem(key);
            return saved ? Object.assign({}, fallback, JSON.parse(saved)) : Object.assign({}, fallback);
        } catch (err) {
            return Object.assign({}, fallback);
        }
    }

    function saveConfig() {
        localStorage.setItem(CONFIG_KEY, JSON.stringify(config));
    }

    function escapeHtml(text) {
        const div = document.createElement('div');
        div.textContent = text == null ? '' : String(text);
        return div.innerHTML;
    }

    async function postJson(url, body) {
        const res = await fetch(url, {
            method: 'POST',
            headers: { 'Content-Type': 'application/json' },
            body: JSON.stringify(body)
        });
        const data = await res.json();
        if (!res.ok || data.error) {
            throw new Error(data.error || `Request failed (${res.status})`);
        }
        return data;
    }

    // --- Navigation ---
    function showView(name) {
        ['generator', 'chat', 'about', 'admin'].forEach(v => {
            document.getElementById(`view-${v}`).classList.toggle('hidden', v !== name);
        });
        document.querySelectorAll('.nav button').forEach(b => {
            b.classList.toggle('active', b.dataset.view === name);
        });
        if (name === 'about') renderAbout();
    }

    document.querySelectorAll('.nav button').forEach(b => {
        b.addEventListener('click', () => showView(b.dataset.view));
    });

    // --- Data portal ---
    function showTab(name) {
        document.getElementById('tab-upload').classList.toggle('hidden', name !== 'upload');
        document.getElementById('tab-text').classList.toggle('hidden', name !== 'text');
        document.querySelectorAll('.tab-btn').forEach(b => {
            b.classList.toggle('active', b.dataset.tab === name);
        });
    }

    document.querySelectorAll('.tab-btn').forEach(b => {
        b.addEventListener('click', () => showTab(b.dataset.tab));
    });

    function renderFileInfo() {
        const info = document.getElementById('fileInfo');
        if (!uploadedFile) {
            info.classList.add('hidden');
            document.getElementById('uploadZone').classList.remove('hidden');
            return;
        }
        const details = uploadedFile.details || {};
        const extra = details.pages ? ` (${details.pages} pages)` : '';
        info.innerHTML = `
            <div class="success">${escapeHtml(uploadedFile.file.name)}${extra}
                <button class="btn-secondary" id="removeFile" style="margin-left:10px">Remove</button>
            </div>`;
        info.classList.remove('hidden');
        document.getElementById('uploadZone').classList.add('hidden');
        document.getElementById('removeFile').addEventListener('click', () => {
            uploadedFile = null;
            renderFileInfo();
        });
    }

    document.getElementById('fileInput').addEventListener('change', async (e) => {
        const file = e.target.files[0];
        const uploadStatus = document.getElementById('uploadStatus');
        if (!file) return;

        const formData = new FormData();
        formData.append('file', file);
        uploadStatus.innerHTML = `<div class="loading-log">Processing ${escapeHtml(file.name)}...</div>`;

        try {
            const res = await fetch('/upload', { method: 'POST', body: formData });
            const data = await res.json();
            if (!res.ok || data.error) {
                uploadStatus.innerHTML = `<div class="error">${escapeHtml(data.error || 'Upload failed')}</div>`;
            } else if (data.file) {
                uploadedFile = data;
                document.getElementById('textContext').value = '';
                uploadStatus.innerHTML = '';
                renderFileInfo();
            } else {
                uploadedFile = null;
                renderFileInfo();
                document.getElementById('textContext').value = data.text;
                uploadStatus.innerHTML = `<div class="success">Extracted text from ${escapeHtml(data.filename)}</div>`;
                showTab('text');
            }
        } catch (err) {
            uploadStatus.innerHTML = `<div class="error">Upload failed: ${escapeHtml(err.message)}</div>`;
        }
        e.target.value = '';
    });

    // --- Config panel ---
    function renderConfig() {
        const counts = document.getElementById('counts');
        counts.innerHTML = Object.keys(COUNT_LABELS).map(key => `
            <div>
                <label for="${key}">${COUNT_LABELS[key]} (max ${BOOT.limits[key]})</label>
                <input type="number" id="${key}" min="0" max="${BOOT.limits[key]}" value="${config[key]}">
            </div>`).join('');
        Object.keys(COUNT_LABELS).forEach(key => {
            document.getElementById(key).addEventListener('change', (e) => {
                let val = parseInt(e.target.value, 10);
                if (isNaN(val) || val < 0) val = 0;
                if (val > BOOT.limits[key]) val = BOOT.limits[key];
                e.target.value = val;
                config[key] = val;
                saveConfig();
            });
        });

        const diff = document.getElementById('difficulty');
        diff.innerHTML = BOOT.difficulties.map(level => `
            <button class="tab-btn ${config.difficulty === level ? 'active' : ''}" data-level="${level}">${level}</button>`).join('');
        diff.querySelectorAll('button').forEach(b => {
            b.addEventListener('click', () => {
                config.difficulty = b.dataset.level;
                saveConfig();
                renderConfig();
            });
        });

        ['topicFocus', 'examName', 'pdfSubtitle', 'watermarkText'].forEach(key => {
            const input = document.getElementById(key);
            input.value = config[key] || '';
            input.oninput = () => { config[key] = input.value; saveConfig(); };
        });

        const opacity = document.getElementById('watermarkOpacity');
        opacity.value = config.watermarkOpacity || 0.1;
        document.getElementById('opacityLabel').textContent = Math.round(opacity.value * 100);
        opacity.oninput = () => {
            config.watermarkOpacity = parseFloat(opacity.value);
            document.getElementById('opacityLabel').textContent = Math.round(opacity.value * 100);
            saveConfig();
        };
    }

    // --- Generation ---
    let loadingTimer = null;
    function startLoadingLog() {
        const log = document.getElementById('loadingLog');
        let lines = [LOADING_STEPS[0]];
        let i = 0;
        log.classList.remove('hidden');
        log.innerHTML = lines.join('<br>');
        loadingTimer = setInterval(() => {
            i++;
            if (i < LOADING_STEPS.length) {
                lines = lines.slice(-4).concat(LOADING_STEPS[i]);
                log.innerHTML = lines.join('<br>');
            }
        }, 800);
    }

    function stopLoadingLog() {
        clearInterval(loadingTimer);
        document.getElementById('loadingLog').classList.add('hidden');
    }

    document.getElementById('generateBtn').addEventListener('click', async () => {
        const btn = document.getElementById('generateBtn');
        const errorBox = document.getElementById('generateError');
        const textContext = document.getElementById('textContext').value;
        errorBox.innerHTML = '';

        if (!uploadedFile && !textContext.trim()) {
            errorBox.innerHTML = '<div class="error">NO_INPUT_DETECTED: Please upload a file or enter a text prompt to proceed.</div>';
            return;
        }

        btn.disabled = true;
        currentTest = null;
        document.getElementById('results').classList.add('hidden');
        startLoadingLog();

        try {
            const data = await postJson('/generate', {
                file: uploadedFile ? uploadedFile.file : null,
                textContext: textContext,
                config: config
            });
            currentTest = data.test;
            renderPreview([]);
            setTimeout(() => document.getElementById('results').scrollIntoView({ behavior: 'smooth' }), 300);
        } catch (err) {
            errorBox.innerHTML = `<div class="error">${escapeHtml(err.message || 'CRITICAL_FAILURE: Neural engine could not process request.')}</div>`;
        } finally {
            stopLoadingLog();
            btn.disabled = false;
        }
    });

    // --- Preview ---
    function controls(section, idx, count) {
        return `<div class="controls">
            <button data-act="flag" data-section="${section}" data-idx="${idx}" title="Flag for review">&#9873;</button>
            <button data-act="up" data-section="${section}" data-idx="${idx}" ${idx === 0 ? 'disabled' : ''}>&uarr;</button>
            <button data-act="down" data-section="${section}" data-idx="${idx}" ${idx === count - 1 ? 'disabled' : ''}>&darr;</button>
            <button data-act="edit" data-section="${section}" data-idx="${idx}">Edit</button>
            <button data-act="delete" data-section="${section}" data-idx="${idx}">&times;</button>
        </div>`;
    }

    function block(section, idx, count, item, inner) {
        return `<div class="q ${item.isFlagged ? 'flagged' : ''}">${controls(section, idx, count)}${inner}</div>`;
    }

    function sectionHtml(title, section, items, renderItem) {
        if (!items || items.length === 0) return '';
        return `<h3>${title}</h3>` + items.map((item, idx) =>
            block(section, idx, items.length, item, renderItem(item, idx))).join('');
    }

    function renderPreview(flagged) {
        const t = currentTest;
        const paper = document.getElementById('paper');
        let html = `<h1>${escapeHtml(t.title)}</h1>
            <p style="color:#64748b">${escapeHtml(t.subtitle || 'Generated Examination Paper')}</p>`;

        html += sectionHtml('Multiple Choice', 'mcqs', t.mcqs, (q, i) => `
            <p><b>${i + 1}.</b> ${escapeHtml(q.question)}</p>
            <ol type="A" style="margin-left:28px">${q.options.map(o => `<li>${escapeHtml(o)}</li>`).join('')}</ol>
            <div class="answer">Answer: ${escapeHtml(q.answer)}</div>`);
        html += sectionHtml('True / False', 'trueFalse', t.trueFalse, (q, i) => `
            <p><b>${i + 1}.</b> ${escapeHtml(q.statement)}</p>
            <div class="answer">Answer: ${q.isTrue ? 'True' : 'False'}</div>`);
        html += sectionHtml('Fill in the Blanks', 'fillInBlanks', t.fillInBlanks, (q, i) => `
            <p><b>${i + 1}.</b> ${escapeHtml(q.sentence)}</p>
            <div class="answer">Answer: ${escapeHtml(q.answer)}</div>`);
        html += sectionHtml('Matching', 'matching', t.matching, (m) => `
            <div class="match-cols">
                <div>${m.pairs.map((p, i) => `<p>${i + 1}. ${escapeHtml(p.item)}</p>`).join('')}</div>
                <div>${m.pairs.map((p, i) => `<p>${String.fromCharCode(65 + i)}. ${escapeHtml(p.match)}</p>`).join('')}</div>
            </div>`);
        html += sectionHtml('Short Answer', 'shortQuestions', t.shortQuestions, (q, i) => `
            <p><b>${i + 1}.</b> ${escapeHtml(q.question)}</p>
            <div class="answer">Key: ${escapeHtml(q.answerKey)}</div>`);
        html += sectionHtml('Long Answer', 'longQuestions', t.longQuestions, (q, i) => `
            <p><b>${i + 1}.</b> ${escapeHtml(q.question)}</p>
            <div class="answer">Key: ${escapeHtml(q.answerKey)}</div>`);
        html += sectionHtml('Essay Questions', 'essays', t.essays, (q, i) => `
            <p><b>${i + 1}.</b> ${escapeHtml(q.question)}</p>
            <div class="answer">Key points: ${escapeHtml(q.keyPoints)}</div>`);

        paper.innerHTML = html;
        document.getElementById('flagSummary').textContent =
            flagged.length ? `${flagged.length} item(s) marked for review` : '';
        document.getElementById('results').classList.remove('hidden');
    }

    const EDITABLE = {
        mcqs: ['question', 'answer'],
        trueFalse: ['statement'],
        fillInBlanks: ['sentence', 'answer'],
        shortQuestions: ['question', 'answerKey'],
        longQuestions: ['question', 'answerKey'],
        essays: ['question', 'keyPoints']
    };

    document.getElementById('paper').addEventListener('click', async (e) => {
        const btn = e.target.closest('button[data-act]');
        if (!btn || !currentTest) return;

        const section = btn.dataset.section;
        const idx = parseInt(btn.dataset.idx, 10);
        const act = btn.dataset.act;
        const body = { test: currentTest, section: section, index: idx };

        if (act === 'flag') body.action = 'flag';
        if (act === 'delete') body.action = 'delete';
        if (act === 'up' || act === 'down') {
            body.action = 'move';
            body.to = act === 'up' ? idx - 1 : idx + 1;
        }
        if (act === 'edit') {
            const fields = {};
            const item = currentTest[section][idx];
            for (const key of (EDITABLE[section] || [])) {
                const value = prompt(`Edit ${key}`, item[key]);
                if (value === null) return;
                fields[key] = value;
            }
            if (section === 'trueFalse') {
                fields.isTrue = confirm('Is the statement true? (OK = True, Cancel = False)');
            }
            if (Object.keys(fields).length === 0) return;
            body.action = 'update';
            body.fields = fields;
        }

        const errorBox = document.getElementById('editError');
        errorBox.innerHTML = '';
        try {
            const data = await postJson('/exam/edit', body);
            currentTest = data.test;
            renderPreview(data.flagged);
        } catch (err) {
            errorBox.innerHTML = `<div class="error">${escapeHtml(err.message)}</div>`;
        }
    });

    document.getElementById('downloadBtn').addEventListener('click', async () => {
        if (!currentTest) return;
        if (!confirm('Generate the PDF for this test?')) return;

        const res = await fetch('/export', {
            method: 'POST',
            headers: { 'Content-Type': 'application/json' },
            body: JSON.stringify({
                test: currentTest,
                config: config,
                includeAnswers: document.getElementById('includeAnswers').checked
            })
        });
        if (!res.ok) {
            const data = await res.json();
            document.getElementById('editError').innerHTML = `<div class="error">${escapeHtml(data.error)}</div>`;
            return;
        }
        const blob = await res.blob();
        const disposition = res.headers.get('Content-Disposition') || '';
        const match = disposition.match(/filename="?([^";]+)"?/);
        const link = document.createElement('a');
        link.href = URL.createObjectURL(blob);
        link.download = match ? match[1] : 'exam.pdf';
        link.click();
        URL.revokeObjectURL(link.href);
    });

    // --- Chat ---
    function formatInline(text) {
        return escapeHtml(text).replace(/\*\*(.+?)\*\*/g, '<b>$1</b>');
    }

    function formatMessage(text) {
        const parts = text.split(/```([\s\S]*?)```/g);
        return parts.map((part, index) => {
            if (index % 2 === 1) {
                const lines = part.trim().split('\n');
                let code = part.trim();
                if (lines.length > 1 && lines[0].trim() && !lines[0].trim().includes(' ')) {
                    code = lines.slice(1).join('\n');
                }
                return `<pre><code>${escapeHtml(code)}</code></pre>`;
            }
            return part.split('\n').map(line => {
                const trimmed = line.trim();
                if (trimmed.startsWith('* ')) return `<li>${formatInline(trimmed.substring(2))}</li>`;
                if (trimmed.startsWith('### ')) return `<h4>${formatInline(trimmed.substring(4))}</h4>`;
                if (trimmed === '') return '';
                return `<p>${formatInline(line)}</p>`;
            }).join('');
        }).join('');
    }

    function renderChat() {
        const log = document.getElementById('chatLog');
        log.innerHTML = chatHistory.map(m =>
            `<div class="msg ${m.role}">${formatMessage(m.text)}</div>`).join('');
        log.scrollTop = log.scrollHeight;
    }

    async function sendChat() {
        const input = document.getElementById('chatInput');
        const errorBox = document.getElementById('chatError');
        const message = input.value.trim();
        if (!message) return;

        const history = chatHistory.slice();
        chatHistory.push({ role: 'user', text: message, timestamp: Date.now() });
        input.value = '';
        errorBox.innerHTML = '';
        renderChat();

        try {
            const data = await postJson('/chat', { history: history, message: message });
            chatHistory.push({ role: 'model', text: data.reply, timestamp: data.timestamp });
        } catch (err) {
            errorBox.innerHTML = `<div class="error">${escapeHtml(err.message)}</div>`;
        }
        renderChat();
    }

    document.getElementById('chatSend').addEventListener('click', sendChat);
    document.getElementById('chatInput').addEventListener('keypress', (e) => {
        if (e.key === 'Enter') {
            e.preventDefault();
            sendChat();
        }
    });

    // --- About / Admin ---
    function renderAbout() {
        document.getElementById('ownerName').textContent = adminConfig.ownerName;
        document.getElementById('ownerBio').textContent = adminConfig.ownerBio;
        document.getElementById('ownerImage').src = adminConfig.profileImage;
    }

    function showAdminForm(authenticated) {
        document.getElementById('adminLogin').classList.toggle('hidden', authenticated);
        document.getElementById('adminForm').classList.toggle('hidden', !authenticated);
        if (authenticated) {
            document.getElementById('editName').value = adminConfig.ownerName;
            document.getElementById('editBio').value = adminConfig.ownerBio;
            document.getElementById('editImage').value = adminConfig.profileImage;
        }
    }

    document.getElementById('adminLoginBtn').addEventListener('click', async () => {
        const errorBox = document.getElementById('adminLoginError');
        errorBox.innerHTML = '';
        try {
            await postJson('/admin/login', {
                userId: document.getElementById('adminUser').value,
                password: document.getElementById('adminPass').value
            });
            document.getElementById('adminPass').value = '';
            showAdminForm(true);
        } catch (err) {
            errorBox.innerHTML = `<div class="error">${escapeHtml(err.message)}</div>`;
        }
    });

    document.getElementById('adminLogoutBtn').addEventListener('click', async () => {
        await postJson('/admin/logout', {});
        showAdminForm(false);
    });

    document.getElementById('editImageFile').addEventListener('change', (e) => {
        const file = e.target.files[0];
        if (!file) return;
        const reader = new FileReader();
        reader.onloadend = () => {
            if (reader.result) document.getElementById('editImage').value = reader.result;
        };
        reader.readAsDataURL(file);
    });

    document.getElementById('adminSaveBtn').addEventListener('click', async () => {
        const statusBox = document.getElementById('adminStatus');
        try {
            const data = await postJson('/admin/config', {
                ownerName: document.getElementById('editName').value,
                ownerBio: document.getElementById('editBio').value,
                profileImage: document.getElementById('editImage').value
            });
            adminConfig = data.config;
            localStorage.setItem(ADMIN_KEY, JSON.stringify(adminConfig));
            statusBox.innerHTML = `<div class="success">${escapeHtml(data.message)}</div>`;
        } catch (err) {
            statusBox.innerHTML = `<div class="error">${escapeHtml(err.message)}</div>`;
        }
    });

    // --- Init ---
    document.addEventListener('DOMContentLoaded', async () => {
        renderConfig();
        renderChat();
        if (!localStorage.getItem(TUTORIAL_KEY)) {
            setTimeout(() => document.getElementById('tutorial').classList.remove('hidden'), 1500);
            localStorage.setItem(TUTORIAL_KEY, 'true');
        }
        document.getElementById('tutorialClose').addEventListener('click', () => {
            document.getElementById('tutorial').classList.add('hidden');
        });
        try {
            const res = await fetch('/admin/config');
            const data = await res.json();
            showAdminForm(data.authenticated);
        } catch (err) {
            showAdminForm(false);
        }
    });
</script>
</body>
</html>
"""


if __name__ == "__main__":
    logger.info("Starting Study.AI on http://localhost:5000 (model: %s)", settings.GEMINI_MODEL)
    app.run(debug=True, port=5000)
