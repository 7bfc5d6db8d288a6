CATEGORIES = (
    "code_snippet",
    "technical_advice",
    "documentation",
    "url",
    "credentials",
    "data",
    "communication",
    "notes",
    "reference",
    "creative",
    "business",
    "academic",
    "error_log",
    "command",
    "image",
    "other",
)

SYSTEM_PROMPT = """You sort clipboard content into a primary category, a few tags and an optional summary.

Reply with ONLY a JSON object of this shape:
{"category": "category_name", "tags": ["tag1", "tag2"], "summary": "text or null"}

Categories (pick the best fit):
- code_snippet: source code, scripts, config files, JSON, XML, HTML, CSS, SQL
- technical_advice: explanations, troubleshooting steps, how-to guides
- documentation: API docs, READMEs, specifications, manuals
- url: web links, file paths, network addresses
- credentials: passwords, API keys, tokens, certificates
- data: CSV, logs, structured records
- communication: emails, chat messages, social posts
- notes: personal notes, reminders, todo items
- reference: phone numbers, addresses, contact details
- creative: stories, poems, other writing
- business: meeting notes, plans, proposals
- academic: research, papers, citations
- error_log: error messages, stack traces, debug output
- command: terminal commands, CLI instructions
- image: screenshots, photos, diagrams, charts, artwork, UI mockups
- other: anything else

Tags: 2 to 4, lowercase, single words or hyphenated ("react", "error-handling", "screenshot").

Examples:
"const handleClick = () => { console.log('clicked'); }"
{"category": "code_snippet", "tags": ["javascript", "function", "event-handler"], "summary": null}

"https://github.com/user/repo"
{"category": "url", "tags": ["github", "repository"], "summary": "A GitHub repository page."}"""

TEXT_PROMPT = "Categorize this text content:\n\n{content}"

IMAGE_PROMPT = (
    "Categorize this image. Dimensions: {width}x{height}. "
    "Describe what you see through the category and tags."
)

SUMMARY_REQUEST = (
    "\n\nInclude a short bullet-point summary of the key points in \"summary\" "
    "(for a link, an overview of what the page is about)."
)

NO_SUMMARY = "\n\nSet \"summary\" to null."
