"""berthのコマンドラインエントリポイント。"""

if __name__ == "__main__":
    from berth.cli import app

    app()
