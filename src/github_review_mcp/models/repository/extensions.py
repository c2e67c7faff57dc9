SOURCE_CODE_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".js",
        ".jsx",
        ".ts",
        ".tsx",
        ".py",
        ".java",
        ".c",
        ".cpp",
        ".h",
        ".hpp",
        ".cs",
        ".go",
        ".rs",
        ".swift",
        ".kt",
        ".kts",
        ".rb",
        ".php",
        ".m",
        ".scala",
        ".html",
        ".css",
        ".scss",
        ".less",
        ".vue",
        ".svelte",
    }
)
