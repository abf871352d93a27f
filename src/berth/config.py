"""berthの設定管理。"""

from pathlib import Path

from pydantic_settings import BaseSettings

# テンプレートソース直下に置くアプリケーション記述子
DESCRIPTOR_FILENAME = "berth.yaml"
# composeファイル（テンプレートとして描画された後にそのまま実行される）
COMPOSE_FILENAME = "docker-compose.jinja2"
TEMPLATE_SUFFIX = ".jinja2"
IGNORE_FILENAME = ".berthignore"
STORE_FILENAME = "config.json"


class BerthConfig(BaseSettings):
    """実行時設定。環境変数から読み込み可能。"""

    model_config = {"env_prefix": "BERTH_"}

    home_dir: Path = Path.home() / ".berth"
    log_level: str = "INFO"
    always_pull: bool = False
    # Trueの場合composeコマンドを実行せずにログ出力のみ行う
    no_run: bool = False
    compose_command: str = "docker-compose"
