import sys

import eztag


def main() -> None:
    source = sys.argv[1]
    doc = eztag.read(source)
    print(f"{doc.version.acadver}: {doc.record_counts()}")

    result = eztag.write_dxf(doc, "/tmp/tables_r12.dxf", version="R12", kinds="LAYER STYLE")
    print(result)


if __name__ == "__main__":
    main()
