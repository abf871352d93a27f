"""Jinja2テンプレートをvaluesドキュメントで描画するサービス。"""

import logging
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from berth.models.errors import RenderError

logger = logging.getLogger(__name__)

# エンジンが注入する予約キー（テンプレートファイルのあるディレクトリの絶対パス）
TEMPLATE_DIR_KEY = "template_dir"


class TemplateRenderer:
    """テンプレートファイル1つを描画する。

    未定義の変数参照はdefaultフィルタがない限りエラーとする。
    """

    def build_context(self, template_path: Path, values: dict[str, Any]) -> dict[str, Any]:
        """描画コンテキストを作成する。予約キーは呼び出し側の値を常に上書きする。"""
        context = dict(values)
        context[TEMPLATE_DIR_KEY] = str(template_path.resolve().parent)
        return context

    def render(self, template_path: Path, values: dict[str, Any]) -> str:
        """テンプレートを描画して文字列を返す。

        Args:
            template_path: テンプレートファイルのパス。
            values: 統合済みvaluesドキュメント。

        Returns:
            描画結果。

        Raises:
            RenderError: テンプレートが見つからない、構文エラー、未定義変数の参照など。
        """
        logger.debug("Rendering template: %s", template_path)
        context = self.build_context(template_path, values)
        env = Environment(
            loader=FileSystemLoader(str(template_path.resolve().parent)),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )
        try:
            template = env.get_template(template_path.name)
            return template.render(context)
        except TemplateError as e:
            raise RenderError(template_path, f"{type(e).__name__}: {e}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise RenderError(template_path, str(e)) from e
