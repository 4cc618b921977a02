import json


REQUEST_SHAPE = {
    "name": "<string, kebab-case, short>",
    "keyName": "<string or empty if not provided>",
    "useAl2023": "<true|false>",
    "instanceType": "<string, e.g., t2.micro>",
    "securityGroups": ["<sg-id>", "..."],
    "userData": "<bash script as a single string with \\n line breaks>",
}

_RULES = """RULES FOR VALUES
1) Operating system
   - Always target Amazon Linux. Set "useAl2023": true unless the request explicitly asks for Amazon Linux 2.
   - If the request explicitly asks for Amazon Linux 2, set "useAl2023": false.

2) Instance type
   - Use the instance type from the request if one is given.
   - Otherwise use "t2.micro".

3) Name
   - Derive a short kebab-case name from the request, e.g. "web-1", "mysql-db-1", "mariadb-db-1".
   - Letters, digits and hyphens only.

4) Key pair
   - Use the key pair name from the request if one is given.
   - Otherwise set "keyName": "".

5) Security groups
   - Include security group ids from the request (matching ^sg-[a-f0-9]{8,17}$) in the order given.
   - If none are given return "securityGroups": [].
   - Never invent security group ids.

6) userData
   - Start with a bash shebang, set -euo pipefail, update the system and install only what is needed.
   - Every package operation MUST use yum (never dnf): yum update -y, yum install -y <pkg>, yum remove -y <pkg>.
   - Start services with systemctl enable --now <service>.
   - Web server requested ("web", "http", "apache"): install httpd, enable it and write a basic index.html.
   - MySQL requested:
       * install MySQL Community Server with yum, adding the MySQL community repository for Amazon Linux first if needed, then yum install -y mysql-server;
       * systemctl enable --now mysqld;
       * use credentials from the request, otherwise placeholders such as StrongP@ssw0rd!, app_db and app_user;
       * harden non-interactively (set the root password, drop test databases and anonymous users) and create the application database/user if asked.
   - MariaDB requested:
       * yum install -y mariadb-server;
       * systemctl enable --now mariadb;
       * apply the same non-interactive hardening and optional database/user creation.
   - MySQL and MariaDB are mutually exclusive: if both are mentioned, use the one mentioned last.
   - If no database and no web server is requested, keep userData minimal: update packages and write a health marker file.

7) Safety
   - Never make up secrets. Without user-supplied passwords use placeholders the user must change later.
   - Keep scripts idempotent where reasonable (e.g. guard file creation with || true).

8) Keys
   - Do not add any keys beyond the shape above."""


def build_synthesis_prompt(query: str) -> str:
    """Wrap a free-text request in the instructions for a single EC2 create document."""
    shape = json.dumps(REQUEST_SHAPE, indent=2).replace('"<true|false>"', "<true|false>")
    return (
        "You are an expert cloud solution architect and DevOps engineer. Produce EXACTLY ONE JSON object "
        "that an API will use to create a single AWS EC2 instance. Follow ALL rules below.\n\n"
        "OUTPUT FORMAT (MANDATORY)\n"
        "- Output ONLY the JSON object. No prose, no markdown, no comments.\n"
        "- The object MUST have exactly these keys, in this order:\n"
        f"{shape}\n"
        "- Missing values take the defaults from RULES FOR VALUES.\n"
        "- securityGroups MUST be an array.\n"
        "- userData MUST be a valid bash script for Amazon Linux embedded as a JSON string, "
        "with \\n for newlines and properly escaped quotes.\n\n"
        f"{_RULES}\n\n"
        "MAPPING THE USER REQUEST\n"
        "- The text between triple backticks is the only source of truth.\n"
        "- Extract name, instance type, key pair and security group ids when present.\n"
        "- Decide between MySQL and MariaDB and whether a web server is wanted, then build userData.\n"
        "- Apply the defaults for anything missing.\n\n"
        "INPUT (user request)\n"
        f"```{query}```\n\n"
        "NOW PRODUCE THE FINAL JSON OBJECT ONLY.\n"
    )
