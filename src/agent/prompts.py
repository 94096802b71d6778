ANALYZE_RESUME_PROMPT = """You are an expert resume reviewer and ATS (applicant tracking system) specialist.

Parse the resume below into its sections, score its ATS compatibility from 0 to 100
with a breakdown for formatting, keywords, structure and content, and list concrete
issues with fixes, detected keywords, suggested keywords, strengths and improvements.

RESUME:
{resumeText}

{jobDescriptionSection}"""

OPTIMIZE_RESUME_PROMPT = """You are an expert resume writer.

Rewrite the resume below for maximum ATS compatibility and impact. Keep every fact
truthful, quantify achievements where the original supports it, and use strong action
verbs. List the improvements you made.

RESUME:
{resumeText}

PRIOR ANALYSIS:
{analysisInsights}

{jobDescriptionSection}"""


def build_prompt(template: str, variables: dict[str, str]) -> str:
    result = template
    for key, value in variables.items():
        result = result.replace(f"{{{key}}}", value)
    return result


def analyze_job_section(job_description: str | None) -> str:
    if job_description:
        return (
            f"JOB DESCRIPTION TO MATCH:\n{job_description}\n\n"
            "Tailor the analysis to this specific job, identifying missing keywords and skills."
        )
    return "No specific job description provided. Provide general ATS optimization recommendations."


def optimize_job_section(job_description: str | None) -> str:
    if job_description:
        return f"TARGET JOB DESCRIPTION:\n{job_description}\n\nOptimize the resume specifically for this role."
    return "No specific job description provided. Optimize for general ATS compatibility."
