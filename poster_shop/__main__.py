import os

from .app import create_app


def main():
    app = create_app()
    port = int(os.environ.get("PORT", 3000))
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
