import logging

from flask import Flask, request, jsonify
from flask_cors import CORS

import tacgen
import stepper

DEFAULT_CONFIG = {
    "STEP_DELAY_MS": stepper.DEFAULT_DELAY_MS,
    "MIN_STEP_DELAY_MS": stepper.MIN_DELAY_MS,
    "MAX_STEP_DELAY_MS": stepper.MAX_DELAY_MS,
    "STEP_DELAY_INCREMENT_MS": stepper.DELAY_STEP_MS,
    "MAX_SOURCE_LENGTH": 100_000,
    "ALLOWED_EXTENSIONS": {"txt"},
}

STEP_ACTIONS = ("goto", "previous", "next", "reset")


class RequestError(Exception):
    def __init__(self, message):
        super().__init__(message)
        self.message = message


def block_to_dict(block):
    """
    Serialize a block to dict recursively
    """
    if block is None:
        return None
    d = {"type": type(block).__name__, "lineno": block.lineno}
    if isinstance(block, tacgen.Assignment):
        d["text"] = block.text
        d["target"] = block.target
        d["expr"] = block.expr
    elif isinstance(block, tacgen.Conditional):
        d["condition"] = block.condition
        d["end_lineno"] = block.end_lineno
        d["body"] = [block_to_dict(b) for b in block.body]
        if block.else_body is None:
            d["else_body"] = None
        else:
            d["else_body"] = [block_to_dict(b) for b in block.else_body]
    return d


def instruction_to_dict(instr):
    if instr is None:
        return None
    return {"line": instr.line, "code": instr.code}


def empty_response(errors):
    return {
        "tac": [],
        "listing": [],
        "blocks": [],
        "skipped": [],
        "errors": errors,
    }


def read_source(app):
    """Pull the source text out of a JSON body or a .txt upload."""
    upload = request.files.get("file")
    if upload is not None:
        filename = upload.filename or ""
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        if ext not in app.config["ALLOWED_EXTENSIONS"]:
            raise RequestError(f"Unsupported file type: {filename!r}")
        try:
            code = upload.read().decode("utf-8-sig")
        except UnicodeDecodeError:
            raise RequestError("Uploaded file is not valid UTF-8 text")
    else:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise RequestError("Expected a JSON object with a 'code' field")
        code = data.get("code", "")
        if not isinstance(code, str):
            raise RequestError("'code' must be a string")

    if not code.strip():
        raise RequestError("Please enter some code")
    if len(code) > app.config["MAX_SOURCE_LENGTH"]:
        raise RequestError(f"Source exceeds {app.config['MAX_SOURCE_LENGTH']} characters")
    return code


def step_params():
    """Return (action, step, delay_ms) from the JSON body, or the form fields of an upload."""
    if request.files.get("file") is not None:
        data = {}
        for key in ("action", "step", "delay_ms"):
            value = request.form.get(key)
            if value is None or value == "":
                continue
            if key != "action":
                try:
                    value = int(value)
                except ValueError:
                    raise RequestError(f"'{key}' must be an integer")
            data[key] = value
    else:
        data = request.get_json(silent=True) or {}

    action = data.get("action", "goto")
    if action not in STEP_ACTIONS:
        raise RequestError(f"Unknown action {action!r}")
    current = data.get("step", 0)
    if not isinstance(current, int) or isinstance(current, bool):
        raise RequestError("'step' must be an integer")
    delay_ms = data.get("delay_ms")
    if delay_ms is not None and (not isinstance(delay_ms, int) or isinstance(delay_ms, bool)):
        raise RequestError("'delay_ms' must be an integer")
    return action, current, delay_ms


def make_stepper(app, instructions, delay_ms=None):
    return stepper.Stepper(
        instructions,
        delay_ms=app.config["STEP_DELAY_MS"] if delay_ms is None else delay_ms,
        min_delay_ms=app.config["MIN_STEP_DELAY_MS"],
        max_delay_ms=app.config["MAX_STEP_DELAY_MS"],
        delay_step_ms=app.config["STEP_DELAY_INCREMENT_MS"],
    )


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_mapping(DEFAULT_CONFIG)
    app.config.from_prefixed_env("TACGEN")
    if test_config is not None:
        app.config.update(test_config)
    CORS(app)  # allow cross-origin requests

    @app.errorhandler(RequestError)
    def bad_request(e):
        app.logger.info("rejected request: %s", e.message)
        return jsonify(empty_response([e.message])), 400

    @app.route("/sample", methods=["GET"])
    def sample():
        return jsonify({"code": tacgen.SAMPLE_CODE})

    @app.route("/config", methods=["GET"])
    def config():
        return jsonify({
            "delay_ms": app.config["STEP_DELAY_MS"],
            "min_delay_ms": app.config["MIN_STEP_DELAY_MS"],
            "max_delay_ms": app.config["MAX_STEP_DELAY_MS"],
            "delay_step_ms": app.config["STEP_DELAY_INCREMENT_MS"],
        })

    @app.route("/compile", methods=["POST"])
    def compile_code():
        code = read_source(app)
        try:
            result = tacgen.compile_source(code, verbose=False)
        except Exception as e:
            app.logger.exception("compile failed")
            return jsonify(empty_response([f"Unexpected error: {str(e)}"])), 500

        app.logger.info("compiled %d lines into %d instructions",
                        len(result["lines"]), len(result["tac"]))
        return jsonify({
            "tac": [instruction_to_dict(t) for t in result["tac"]],
            "listing": [tacgen.format_instruction(t) for t in result["tac"]],
            "blocks": [block_to_dict(b) for b in result["blocks"]],
            "skipped": result["skipped"],
            "errors": result["errors"],
        })

    @app.route("/step", methods=["POST"])
    def step():
        code = read_source(app)
        action, current, delay_ms = step_params()

        try:
            tac = tacgen.generate_tac(code)
        except Exception as e:
            app.logger.exception("compile failed")
            return jsonify(empty_response([f"Unexpected error: {str(e)}"])), 500

        s = make_stepper(app, tac, delay_ms)
        s.go_to(current)
        if action == "previous":
            s.previous()
        elif action == "next":
            s.next()
        elif action == "reset":
            s.reset()

        response = s.snapshot()
        response["instruction"] = instruction_to_dict(s.current)
        response["visual"] = stepper.describe(s.current)
        response["highlight"] = stepper.highlight_lines(code, s.current)
        response["errors"] = []
        return jsonify(response)

    return app


app = create_app()

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    app.run(debug=True)
