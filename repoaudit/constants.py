GITHUB_API_BASE = "https://api.github.com"
GEMINI_MODEL = "gemini-2.5-flash"
OLLAMA_URL = "http://localhost:11434"
OLLAMA_MODEL = "qwen2.5-coder:7b"

# Outbound attempt ceilings per service class
REPO_HOST_MAX_ATTEMPTS = 5
LLM_PROVIDER_MAX_ATTEMPTS = 3
RATE_LIMIT_COOLDOWN_SECONDS = 60

# Evidence collection caps
COMMIT_LIMIT = 30
ENRICHED_COMMIT_LIMIT = 15
PULL_REQUEST_LIMIT = 10
BRANCH_LIMIT = 50
CONTRIBUTOR_LIMIT = 50
TREE_ENTRY_LIMIT = 300
RANKED_FILE_LIMIT = 20
FILE_CONTENT_CHAR_LIMIT = 8000
PATCH_EXCERPT_CHAR_LIMIT = 2000

# Prompt rendering caps
README_CHAR_LIMIT = 6000
PROMPT_COMMIT_LIMIT = 15
PATCH_SNIPPET_CHAR_LIMIT = 200
PROMPT_PULL_REQUEST_LIMIT = 5
PULL_REQUEST_BODY_CHAR_LIMIT = 400
PROMPT_CONTRIBUTOR_LIMIT = 20

REVIEW_PROMPT_TEMPLATE = """
# Principal Architecture Audit

You are a **Principal Software Architect** performing a strict, high-level audit of a public repository.
You are given its README, file tree, language breakdown, recent commits, pull requests, contributor
activity and the most architecturally significant source files. Judge patterns and practices, not
individual lines.

---

## INGESTION ORDER

1. README (stated purpose)
2. File tree (architectural organisation)
3. Languages (tech stack against the stated purpose)
4. Commits and pull requests (habits and collaboration)
5. Source files (implementation quality)

---

## EVIDENCE

${readme_context}

${tree_context}

${language_context}

--- COMMIT HISTORY ---
${commit_context}

--- PULL REQUESTS ---
${pr_context}

--- SIGNIFICANT SOURCE FILES ---
${file_context}

--- CONTRIBUTORS ---
${contributor_context}

---

## CRITICAL INSTRUCTIONS

1. **EVIDENCE ONLY:** Never invent commits, pull requests, files or contributors that are not listed above.
2. **CONSERVATIVE SCORING:** Use the full 0-100 range. When evidence is missing, choose a conservative score and say so.
3. **NO CODE GENERATION:** Analyze only. Do not rewrite code.
4. **FORMAT STRICTNESS:** Output exactly two parts, in this order, with no text before the first part.

---

## PART 1 - JSON (strict schema)

```json
{
  "scores": {
    "quality": <integer>,
    "security": <integer>,
    "reliability": <integer>,
    "techStackSuitability": <integer>,
    "teamBalance": <integer>,
    "commitQuality": <integer>,
    "prQuality": <integer>,
    "structureQuality": <integer>
  },
  "codeQualitySummary": "<3-5 sentences on readability, modularity, error handling, testing signals>",
  "commitSummaries": {
    "<commit_sha>": "<3-4 sentences on the technical intent and changes of this commit>"
  },
  "prSummaries": {
    "<pr_number>": "<3-4 sentences on the purpose and scope of this pull request>"
  }
}
```

## PART 2 - MARKDOWN REPORT

Immediately after the JSON block, write:

# Project Summary
<2-4 sentences on what the project is>

## Tech Stack Review (Score: <techStackSuitability>/100)
* <2-5 bullets>

## Code Quality Review (Score: <quality>/100)
* <3-6 bullets>

## Commit Review (Score: <commitQuality>/100)
* <3-5 bullets>

## Contributor Review (Score: <teamBalance>/100)
* <2-5 bullets>

## PR Review (Score: <prQuality>/100)
* <2-5 bullets>

Do not include a File Structure Review section; the structure score belongs in the JSON only.
"""
