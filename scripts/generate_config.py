import yaml


def sample_config():
    """
    Sample configuration accepted by ``app.py``.
    """
    return {
        "global_config": {
            "log_level": "INFO",
            "log_path": "logs/",
            "port": 9844
        },
        "connection": {
            "endpoint": {
                "db_host": "localhost",
                "db_port": 50000,
                "db_name": "testdb",
                "ssl": False
            },
            "credentials": {
                "db_user": "db2inst1",
                "db_passwd": "password_here",
                "encrypted": False
            }
        },
        "pool": {
            "name": "default",
            "pool_size": 10,
            "acquire_timeout": 5.0,
            "shutdown_grace_period": 30.0,
            "validate_on_acquire": True
        },
        "workload": {
            "workers": 4,
            "users": {"Alice": 25, "Bob": 30}
        }
    }


def generate_config(path="config.yaml"):
    """
    Generate a sample config.yaml file.
    """
    with open(path, "w") as f:
        yaml.dump(sample_config(), f, default_flow_style=False, sort_keys=False)


if __name__ == "__main__":
    generate_config()
    print("Sample config.yaml file generated.")
