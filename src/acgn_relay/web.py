"""Flask-based webhook and admin endpoints"""
import asyncio
import hmac
import logging
import threading
from functools import wraps
from typing import TYPE_CHECKING, Optional

from flask import Flask, jsonify, request

if TYPE_CHECKING:
    from .app import RelayApp

logger = logging.getLogger(__name__)

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def secret_matches(provided: Optional[str], expected: str) -> bool:
    if provided is None:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def extract_message(update) -> Optional[tuple]:
    """Return (chat_id, text) for a text message update, None otherwise"""
    if not isinstance(update, dict):
        return None
    message = update.get("message")
    if not isinstance(message, dict):
        return None
    chat = message.get("chat")
    text = message.get("text")
    if not isinstance(chat, dict) or chat.get("id") is None or not isinstance(text, str):
        return None
    return str(chat["id"]), text


class WebhookServer:
    """Flask-based web server for the Telegram webhook and admin triggers"""

    def __init__(self, relay: "RelayApp", host: str = "0.0.0.0", port: int = 8080):
        self.relay = relay
        self.host = host
        self.port = port
        self.app = Flask(__name__)
        self.app.config["web_server"] = self
        self._setup_routes()

    @property
    def secret(self) -> str:
        return self.relay.config.bot_secret

    def webhook_url(self) -> str:
        base = self.relay.config.public_url or f"https://{request.host.split(':')[0]}"
        return f"{base.rstrip('/')}/webhook"

    def _setup_routes(self):
        """Setup all Flask routes"""
        app = self.app
        web_server = self

        def require_query_secret(f):
            """Decorator to require ?secret=... matching the bot secret"""
            @wraps(f)
            def decorated_function(*args, **kwargs):
                if not secret_matches(request.args.get("secret"), web_server.secret):
                    return "invalid secret", 403
                return f(*args, **kwargs)
            return decorated_function

        @app.route("/webhook", methods=["POST"])
        def webhook():
            if not secret_matches(request.headers.get(SECRET_HEADER), web_server.secret):
                return "invalid secret", 403

            update = request.get_json(silent=True)
            logger.debug(f"收到 webhook: {update}")

            if web_server.relay.config.forward_updates_to_admin and update is not None:
                asyncio.run(web_server.relay.forward_update(update))

            parsed = extract_message(update)
            if parsed is None:
                return "unsupported update", 501

            chat_id, text = parsed
            asyncio.run(web_server.relay.handle_message(chat_id, text))
            return "ok", 200

        @app.route("/setWebhook")
        @require_query_secret
        def set_webhook():
            url = web_server.webhook_url()
            ok = asyncio.run(web_server.relay.set_webhook(url))
            return jsonify({"ok": ok, "url": url}), 200 if ok else 500

        @app.route("/unsetWebhook")
        @require_query_secret
        def unset_webhook():
            ok = asyncio.run(web_server.relay.set_webhook(""))
            return jsonify({"ok": ok}), 200 if ok else 500

        # 路径拼写沿用已部署的定时触发器
        @app.route("/fowardJob")
        def forward_job():
            result = asyncio.run(web_server.relay.run_dispatch())
            return jsonify(result.to_dict()), 200

        @app.errorhandler(404)
        def not_found(e):
            return "not found", 404

    def start(self):
        """Start web server in background thread"""
        def run():
            self.app.run(host=self.host, port=self.port, threaded=True, use_reloader=False)

        thread = threading.Thread(target=run, daemon=True)
        thread.start()
        logger.info(f"🌐 Webhook 服务: http://{self.host}:{self.port}/webhook")
