import uvicorn

from ivr_tools import config


def main():
    uvicorn.run("ivr_tools.app:app", host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
