from threading import Thread

from flask import Flask, jsonify


def create_app(ledger=None, registry=None):
    """Flask app for keeping the bot alive, with a read-only ledger view."""
    app = Flask(__name__)

    @app.route('/')
    def home():
        return "Bot is running!"

    @app.route('/stats')
    def stats():
        payload = ledger.statistics().to_dict() if ledger is not None else {}
        if registry is not None:
            payload["open_tickets"] = len(registry.active_tickets())
        return jsonify(payload)

    return app


def keep_alive(ledger=None, registry=None, port=4000):
    app = create_app(ledger, registry)
    server = Thread(target=lambda: app.run(host='0.0.0.0', port=port), daemon=True)
    server.start()
    return server
