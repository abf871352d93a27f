"""berthのカスタム例外クラス。"""

from pathlib import Path


class BerthError(Exception):
    """berthの基底例外クラス。"""


# ----------------------------------------------------------------
# 事前条件エラー（ファイルシステム変更前に検出される）
# ----------------------------------------------------------------


class PreconditionError(BerthError):
    """操作の事前条件を満たしていない場合の例外。"""


class MissingIdError(PreconditionError):
    """アプリケーションIDが指定されていない場合の例外。"""

    def __init__(self, operation: str) -> None:
        super().__init__(f"An application id is required to {operation}.")
        self.operation = operation


class ApplicationExistsError(PreconditionError):
    """同じIDのアプリケーションが既にステージされている場合の例外。"""

    def __init__(self, app_id: str) -> None:
        super().__init__(f"Application '{app_id}' already exists, use upgrade instead.")
        self.app_id = app_id


class ApplicationNotInstalledError(PreconditionError):
    """アップグレード対象のアプリケーションがステージされていない場合の例外。"""

    def __init__(self, app_id: str) -> None:
        super().__init__(f"Application '{app_id}' does not exist, use install instead.")
        self.app_id = app_id


class NoValueFilesError(PreconditionError):
    """valuesファイルが1つも指定されていない場合の例外。"""


class TemplateDirNotFoundError(PreconditionError):
    """テンプレートディレクトリが存在しない場合の例外。"""

    def __init__(self, path: Path) -> None:
        super().__init__(f"Template directory does not exist: {path}")
        self.path = path


class DescriptorNotFoundError(PreconditionError):
    """テンプレート直下にアプリケーション記述子がない場合の例外。"""

    def __init__(self, path: Path) -> None:
        super().__init__(f"Application descriptor not found: {path}")
        self.path = path


class ComposeFileNotFoundError(PreconditionError):
    """テンプレート内にcomposeファイルが1つもない場合の例外。"""

    def __init__(self, template_dir: Path, filename: str) -> None:
        super().__init__(f"No {filename} file found under template directory: {template_dir}")
        self.template_dir = template_dir


class TemplateFileNotFoundError(PreconditionError):
    """templateコマンドに渡されたテンプレートファイルが存在しない場合の例外。"""

    def __init__(self) -> None:
        super().__init__(
            "You have not provided a template file. Use -t <template path> to specify a template file."
        )


# ----------------------------------------------------------------
# ストア
# ----------------------------------------------------------------


class ApplicationNotFoundError(BerthError):
    """ストアに指定IDのアプリケーションが存在しない場合の例外。"""

    def __init__(self, *app_ids: str) -> None:
        super().__init__(f"Application not found: {', '.join(app_ids)}")
        self.app_ids = list(app_ids)


class StorageError(BerthError):
    """ストレージ操作のエラー。"""


# ----------------------------------------------------------------
# パース・I/O・描画
# ----------------------------------------------------------------


class ParseError(BerthError):
    """設定やストア内容のパースに失敗した場合の例外。"""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Failed to parse {source}: {reason}")
        self.source = source
        self.reason = reason


class TopLevelNotMappingError(ParseError):
    """valuesファイルのトップレベルがマッピングでない場合の例外。"""

    def __init__(self, source: str) -> None:
        super().__init__(source, "Expected top-level YAML structure to be a mapping.")


class StoreParseError(ParseError):
    """ストアファイルが壊れている場合の例外。"""


class DescriptorParseError(ParseError):
    """アプリケーション記述子が不正な場合の例外。"""


class ComposeParseError(ParseError):
    """composeファイルが不正なYAMLの場合の例外。"""


class ValueFileNotFoundError(BerthError):
    """valuesファイルが見つからない場合の例外。"""

    def __init__(self, path: str) -> None:
        super().__init__(f"Failed to read values YAML file: {path}")
        self.path = path


class FileOperationError(BerthError):
    """コピー・ディレクトリ作成・読み書きなどのファイル操作エラー。"""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"File operation failed on {path}: {reason}")
        self.path = path
        self.reason = reason


class RenderError(BerthError):
    """テンプレート描画エラー。"""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Failed to render template {path}: due to an error in the template. Error: {reason}")
        self.path = path
        self.reason = reason


class ExternalCommandError(BerthError):
    """外部コマンドが非ゼロで終了した場合の例外。"""

    def __init__(self, message: str, command: list[str], exit_code: int) -> None:
        super().__init__(message)
        self.command = command
        self.exit_code = exit_code
