# Index Constants
"""
Storage layout and option keys shared by the index and source modules.
"""

# バージョンディレクトリ: <index_path>/v__=<version_id>
INDEX_VERSION_DIRECTORY_PREFIX = "v__"

# ログディレクトリ: <index_path>/_versindex_log/<log_id>
INDEX_LOG_DIRECTORY = "_versindex_log"
LATEST_STABLE_LOG_NAME = "latestStable"

# リネージ列（インデックス行 -> ソースファイルID）
DATA_FILE_ID_COLUMN = "_data_file_id"

# ソース読み込みオプション
GLOBBING_PATTERN_KEY = "versindex.source.globbingPattern"
PATH_OPTION_KEY = "path"
BASE_PATH_OPTION_KEY = "basePath"

DEFAULT_SUPPORTED_FORMATS = "csv,json,orc,parquet"

# リフレッシュモード
REFRESH_MODE_INCREMENTAL = "incremental"
REFRESH_MODE_QUICK = "quick"
REFRESH_MODE_FULL = "full"
REFRESH_MODES = (REFRESH_MODE_INCREMENTAL, REFRESH_MODE_QUICK, REFRESH_MODE_FULL)
