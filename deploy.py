import os
import shlex
import subprocess
import sys

ENV_CONFIG = {
    "devel": {"stack_name": "UgcReviews-devel", "env_file": ".env"},
    "prod": {"stack_name": "UgcReviews", "env_file": ".env"},
}

# template.yaml parameter -> .env variable
PARAMETER_ENV_VARS = {
    "AdminKey": "ADMIN_KEY",
    "TokenSecret": "TOKEN_SECRET",
    "CloudinaryCloudName": "CLOUDINARY_CLOUD_NAME",
    "CloudinaryApiKey": "CLOUDINARY_API_KEY",
    "CloudinaryApiSecret": "CLOUDINARY_API_SECRET",
    "BrevoKey": "BREVO_KEY",
    "BrevoSenderEmail": "BREVO_SENDER_EMAIL",
}
OPTIONAL_PARAMETER_ENV_VARS = {"CorsAllowOrigin": "CORS_ALLOW_ORIGIN"}


def check_docker():
    """Checks that the Docker daemon is running (needed by sam build --use-container)."""
    try:
        subprocess.run(
            ["docker", "info"],
            check=True,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        print("Error: Docker is not running. Start Docker and try again.")
        sys.exit(1)


def load_env(env_file):
    env_vars = {}
    if os.path.exists(env_file):
        print(f"--- Loading variables from: {env_file} ---")
        with open(env_file, "r") as f:
            for line in f:
                if line.strip() and not line.strip().startswith("#"):
                    try:
                        key, value = line.strip().split("=", 1)
                        env_vars[key.strip()] = value.strip().strip('"').strip("'")
                    except ValueError:
                        continue
    else:
        print(f"WARNING: {env_file} not found!")
    return env_vars


def build_parameter_overrides(env_vars, target_env):
    """Raises KeyError naming the first required variable missing from ``env_vars``."""
    overrides = [f"Env={target_env}"]
    for parameter, variable in PARAMETER_ENV_VARS.items():
        overrides.append(f"{parameter}={env_vars[variable]}")
    for parameter, variable in OPTIONAL_PARAMETER_ENV_VARS.items():
        if env_vars.get(variable):
            overrides.append(f"{parameter}={env_vars[variable]}")
    return overrides


def deploy(target_env):
    config = ENV_CONFIG.get(target_env)
    env_vars = load_env(config["env_file"])
    try:
        _build_and_deploy(env_vars, target_env, config["stack_name"])
    except KeyError as e:
        print(f"Error: variable {e} not found in {config['env_file']}")
        sys.exit(1)
    except subprocess.CalledProcessError as e:
        print(f"Error while running SAM: {e}")
        sys.exit(1)


def _build_and_deploy(env_vars, target_env, stack_name):
    overrides = build_parameter_overrides(env_vars, target_env)
    check_docker()

    print(f"--- Building for {target_env} ---")
    subprocess.run(
        ["sam", "build", "--use-container", "--cached", "--parallel"], check=True
    )

    print(f"--- Deploying stack: {stack_name} ---")
    cmd = [
        "sam",
        "deploy",
        "--stack-name",
        stack_name,
        "--parameter-overrides",
        " ".join(shlex.quote(o) for o in overrides),
        "--resolve-s3",
        "--capabilities",
        "CAPABILITY_IAM",
    ]
    subprocess.run(cmd, check=True)


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python deploy.py [devel|prod]")
        sys.exit(1)

    target = sys.argv[1].lower()

    if target not in ENV_CONFIG:
        print("Invalid environment. Use 'devel' or 'prod'.")
        sys.exit(1)

    deploy(target)
