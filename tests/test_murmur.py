import pytest

from barco.murmur import fmix, murmur3_h1, rotl


def _as_signed(value):
    return value - (1 << 64) if value >= 1 << 63 else value


@pytest.mark.parametrize(
    "value, rotate, expected",
    [
        (123456789, 33, 1060485742448345088),
        (-123456789, 33, -1060485733858410497),
        (-12345678987654, 33, 1756681988166642059),
        (7210216203459776512, 31, -4287945813905642825),
        (2453826951392495049, 27, -2013042863942636044),
        (270400184080946339, 33, -3553153987756601583),
        (2060965185473694757, 31, 6290866853133484661),
        (3075794793055692309, 33, -3158909918919076318),
        (-6486402271863858009, 31, 405973038345868736),
    ],
)
def test_rotl(value, rotate, expected):
    assert rotl(value, rotate) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        (123456789, -8107560010088384378),
        (-123456789, -5252787026298255965),
        (-12345678987654, -1122383578793231303),
        (-1241537367799374202, 3388197556095096266),
        (-7566534940689533355, 4729783097411765989),
    ],
)
def test_fmix(value, expected):
    assert fmix(value) == expected


def test_murmur3_h1_cassandra_sign():
    key = bytes.fromhex("00104327529fb645dd00b883ec39ae448bb800000400066a6b00")
    assert murmur3_h1(key) == -9223371632693506265


SERIES_EXPECTED = [
    0x0000000000000000,
    0x2AC9DEBED546A380,
    0x649E4EAA7FC1708E,
    0xCE68F60D7C353BDB,
    0x0F95757CE7F38254,
    0x0F04E459497F3FC1,
    0x88C0A92586BE0A27,
    0x13EB9FB82606F7A6,
    0x8236039B7387354D,
    0x4C1E87519FE738BA,
    0x3F9652AC3EFFEB24,
    0x3F33760DED9006C6,
    0xAED70A6631854CB1,
    0x8A299A8F8E0E2DA7,
    0x624B675C779249A6,
    0xA4B203BB1D90B9A3,
    0xA3293AD698ECB99A,
    0xBC740023DBD50048,
    0x3FE5AB9837D25CDD,
    0x2D0338C1CA87D132,
]


@pytest.mark.parametrize("length, expected", list(enumerate(SERIES_EXPECTED)))
def test_murmur3_h1_series(length, expected):
    sample = "".join(str(i % 10) for i in range(length))
    assert murmur3_h1(sample.encode()) == _as_signed(expected)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("hello", 0xCBD8A7B341BD9B02),
        ("hello, world", 0x342FAC623A5EBC8E),
        ("19 Jan 2038 at 3:14:07 AM", 0xB89E5988B737AFFC),
        ("The quick brown fox jumps over the lazy dog.", 0xCD99481F9EE902C9),
    ],
)
def test_murmur3_h1_known_values(text, expected):
    assert murmur3_h1(text.encode()) == _as_signed(expected)


def test_murmur3_h1_1024_bytes():
    data = bytes(i % 256 for i in range(1024))
    assert murmur3_h1(data) == 7627370222079200297