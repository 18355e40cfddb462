from enum import IntEnum
from typing import Optional


class MediaType(IntEnum):
    """Physical medium classification reported by image plugins.

    Values follow the numbering used by the reference fixture tables, so a
    table written against one tool can be read by another.
    """

    Unknown = 0
    UnknownMO = 1
    GENERIC_HDD = 2
    Microdrive = 3
    Zone_HDD = 4
    FlashDrive = 5

    # optical
    CD = 10
    CDDA = 11
    CDG = 12
    CDEG = 13
    CDI = 14
    CDROM = 15
    CDROMXA = 16
    CDPLUS = 17
    CDMO = 18
    CDR = 19
    CDRW = 20
    CDMRW = 21
    VCD = 22
    SVCD = 23
    PCD = 24
    DVDROM = 40
    DVDR = 41
    DVDRW = 42
    DVDPR = 43
    DVDPRW = 44
    DVDPRWDL = 45
    DVDRDL = 46
    DVDPRDL = 47
    DVDRAM = 48
    BDROM = 60
    BDR = 61
    BDRE = 62
    BDRXL = 63

    # Apple
    Apple32SS = 180
    Apple32DS = 181
    Apple33SS = 182
    Apple33DS = 183
    AppleSonySS = 184
    AppleSonyDS = 185
    AppleFileWare = 186

    # IBM PC
    DOS_525_SS_DD_8 = 190
    DOS_525_SS_DD_9 = 191
    DOS_525_DS_DD_8 = 192
    DOS_525_DS_DD_9 = 193
    DOS_525_HD = 194
    DOS_35_SS_DD_8 = 195
    DOS_35_SS_DD_9 = 196
    DOS_35_DS_DD_8 = 197
    DOS_35_DS_DD_9 = 198
    DOS_35_HD = 199
    DOS_35_ED = 200
    DMF = 201
    DMF_82 = 202
    XDF_525 = 203
    XDF_35 = 204

    # IBM 8"
    IBM23FD = 210
    IBM33FD_128 = 211
    IBM33FD_256 = 212
    IBM33FD_512 = 213
    IBM43FD_128 = 214
    IBM43FD_256 = 215
    IBM53FD_256 = 216
    IBM53FD_512 = 217
    IBM53FD_1024 = 218

    # DEC
    RX01 = 220
    RX02 = 221
    RX03 = 222
    RX50 = 223

    # Acorn
    ACORN_525_SS_SD_40 = 230
    ACORN_525_SS_SD_80 = 231
    ACORN_525_SS_DD_40 = 232
    ACORN_525_SS_DD_80 = 233
    ACORN_525_DS_DD = 234
    ACORN_35_DS_DD = 235
    ACORN_35_DS_HD = 236

    # Atari
    ATARI_525_SD = 240
    ATARI_525_ED = 241
    ATARI_525_DD = 242
    ATARI_35_SS_DD = 243
    ATARI_35_DS_DD = 244

    # Commodore
    CBM_35_DD = 250
    CBM_AMIGA_35_DD = 251
    CBM_AMIGA_35_HD = 252
    CBM_1540 = 253
    CBM_1540_Ext = 254
    CBM_1571 = 255

    # NEC / Sharp
    NEC_8_SD = 260
    NEC_8_DD = 261
    NEC_525_SS = 262
    NEC_525_DS = 263
    NEC_525_HD = 264
    NEC_35_HD_8 = 265
    NEC_35_HD_15 = 266
    NEC_35_TD = 267
    SHARP_525 = 264
    SHARP_525_9 = 268
    SHARP_35 = 265
    SHARP_35_9 = 269

    # ECMA
    ECMA_99_8 = 270
    ECMA_99_15 = 271
    ECMA_99_26 = 272
    ECMA_54 = 273
    ECMA_59 = 274
    ECMA_66 = 275
    ECMA_69_8 = 276
    ECMA_69_15 = 277
    ECMA_69_26 = 278
    ECMA_70 = 279
    ECMA_78 = 280
    ECMA_78_2 = 281

    # FDFORMAT
    FDFORMAT_525_DD = 290
    FDFORMAT_525_HD = 291
    FDFORMAT_35_DD = 292
    FDFORMAT_35_HD = 293

    # tape
    AIT1 = 320
    AIT2 = 322
    AIT3 = 324
    DigitalAudioTape = 380
    DDS1 = 384
    DDS2 = 385
    DDS3 = 386
    DDS4 = 387
    CompactTapeI = 390
    CompactTapeII = 391
    DLTtapeIII = 393
    DLTtapeIV = 395
    Exatape15m = 400
    Exatape54m = 406
    Exatape112m = 412
    IBM3480 = 471
    IBM3490 = 472
    LTO = 480
    LTO2 = 481
    LTO3 = 482
    # shares its value with Zone_HDD in the reference numbering
    UnknownTape = 4


def parse_media_type(name: str) -> Optional[MediaType]:
    """Look up a member by its table name, ``None`` if unknown."""
    try:
        return MediaType[name]
    except KeyError:
        return None


# Image size in bytes -> media type, for images carrying no geometry header.
# Sizes that are not listed here are treated as hard disks.
MEDIA_TYPE_BY_SIZE = {
    80384: MediaType.ECMA_66,
    81664: MediaType.IBM23FD,
    92160: MediaType.ATARI_525_SD,
    102400: MediaType.ACORN_525_SS_SD_40,
    116480: MediaType.Apple32SS,
    133120: MediaType.ATARI_525_ED,
    143360: MediaType.Apple33SS,
    163840: MediaType.DOS_525_SS_DD_8,
    184320: MediaType.DOS_525_SS_DD_9,
    204800: MediaType.ACORN_525_SS_SD_80,
    232960: MediaType.Apple32DS,
    242944: MediaType.IBM33FD_128,
    256256: MediaType.ECMA_54,
    286720: MediaType.Apple33DS,
    287488: MediaType.IBM33FD_256,
    306432: MediaType.IBM33FD_512,
    325632: MediaType.ECMA_70,
    327680: MediaType.DOS_525_DS_DD_8,
    368640: MediaType.DOS_525_DS_DD_9,
    409600: MediaType.AppleSonySS,
    495872: MediaType.IBM43FD_128,
    512512: MediaType.ECMA_59,
    653312: MediaType.ECMA_78,
    655360: MediaType.ACORN_525_DS_DD,
    737280: MediaType.DOS_35_DS_DD_9,
    819200: MediaType.AppleSonyDS,
    839680: MediaType.FDFORMAT_35_DD,
    901120: MediaType.CBM_AMIGA_35_DD,
    988416: MediaType.IBM43FD_256,
    995072: MediaType.IBM53FD_256,
    1021696: MediaType.ECMA_99_26,
    1146624: MediaType.IBM53FD_512,
    1177344: MediaType.ECMA_99_15,
    1222400: MediaType.IBM53FD_1024,
    1228800: MediaType.DOS_525_HD,
    1255168: MediaType.ECMA_69_8,
    1261568: MediaType.NEC_8_DD,
    1304320: MediaType.ECMA_99_8,
    1310720: MediaType.NEC_525_HD,
    1427456: MediaType.FDFORMAT_525_HD,
    1474560: MediaType.DOS_35_HD,
    1720320: MediaType.DMF,
    1763328: MediaType.FDFORMAT_35_HD,
    1802240: MediaType.CBM_AMIGA_35_HD,
    1880064: MediaType.XDF_35,
    1884160: MediaType.XDF_35,
    2949120: MediaType.DOS_35_ED,
}


def media_type_from_size(size: int, sector_size: int = 512) -> MediaType:
    if sector_size == 2048:
        return MediaType.CD
    return MEDIA_TYPE_BY_SIZE.get(size, MediaType.GENERIC_HDD)
